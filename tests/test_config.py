"""
配置单元测试

测试默认值与环境变量覆盖
"""

import os
import sys
from pathlib import Path

import pytest

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from hypequant.config import EngineConfig, HolderRiskConfig, HypeConfig


class TestDefaults:
    """测试默认配置"""

    def test_holder_defaults(self):
        """测试持仓风险默认值"""
        config = HolderRiskConfig()
        assert config.weights == (0.2, 0.2, 0.6)
        assert config.exit_weights == (0.2, 0.3, 0.3, 0.2)
        assert config.whale_threshold == 10_000_000
        assert config.coordinated_sell_threshold == 0.3

    def test_hype_weights_sum_to_one(self):
        """测试热度权重之和为 1"""
        config = HypeConfig()
        total = config.weight_frequency + config.weight_sentiment + config.weight_views + config.weight_tweets
        assert total == pytest.approx(1.0)

    def test_engine_config_independent(self):
        """测试每个实例拥有独立的子配置"""
        a, b = EngineConfig(), EngineConfig()
        a.holders.sell_window = 3
        assert b.holders.sell_window == 1


class TestFromEnv:
    """测试环境变量加载"""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch, tmp_path):
        names = [f"HYPEQUANT_{name}" for name in ("INTERVAL_MINUTES", "INFLUENCE_K", "WHALE_THRESHOLD",
                                                  "SELL_WINDOW", "RISK_WEIGHTS", "RSI_METHOD", "LOG_LEVEL")]
        for name in names:
            monkeypatch.delenv(name, raising=False)
        # 避免读取工作目录中的 .env
        monkeypatch.chdir(tmp_path)
        yield
        # load_dotenv 直接写入 os.environ
        for name in names:
            os.environ.pop(name, None)

    def test_overrides(self, monkeypatch):
        """测试环境变量覆盖默认值"""
        monkeypatch.setenv("HYPEQUANT_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("HYPEQUANT_INFLUENCE_K", "2500")
        monkeypatch.setenv("HYPEQUANT_RISK_WEIGHTS", "0.3, 0.3, 0.4")
        monkeypatch.setenv("HYPEQUANT_RSI_METHOD", "EMA")

        config = EngineConfig.from_env()

        assert config.engagement.interval_minutes == 15
        assert config.holders.interval_minutes == 15
        assert config.engagement.influence_k == 2500.0
        assert config.holders.weights == (0.3, 0.3, 0.4)
        assert config.indicators.rsi_method == "ema"

    def test_invalid_values_ignored(self, monkeypatch):
        """测试无效值被忽略"""
        monkeypatch.setenv("HYPEQUANT_SELL_WINDOW", "three")
        monkeypatch.setenv("HYPEQUANT_RISK_WEIGHTS", "0.5,0.5")

        config = EngineConfig.from_env()

        assert config.holders.sell_window == 1
        assert config.holders.weights == (0.2, 0.2, 0.6)

    def test_env_file(self, tmp_path):
        """测试从 .env 文件加载"""
        env_file = tmp_path / "hypequant.env"
        env_file.write_text("HYPEQUANT_WHALE_THRESHOLD=5000000\nHYPEQUANT_LOG_LEVEL=DEBUG\n")

        config = EngineConfig.from_env(str(env_file))

        assert config.holders.whale_threshold == 5_000_000
        assert config.log_level == "DEBUG"
