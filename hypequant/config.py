"""
引擎配置
所有经验常数（影响力上限 K、风险权重、热度权重等）都作为可配置参数暴露
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv
from loguru import logger


ENV_PREFIX = "HYPEQUANT_"


@dataclass
class EngagementConfig:
    """互动评分配置"""
    interval_minutes: int = 5
    influence_k: float = 5000.0          # tanh(followers / K) 的饱和常数
    volume_baseline: float = 10.0        # 成交量缩放 ln(1 + count / N) 的 N
    retweet_weight: float = 2.0
    impression_weight: float = 0.5
    whale_followers: int = 10_000        # 大V账号粉丝门槛
    res_window: int = 5                  # 相对互动峰值的滚动窗口（桶数）


@dataclass
class MomentumConfig:
    """动量引擎配置"""
    tau: int = 15                        # EMA 周期
    whale_lambda: float = 2.5            # 大V助推放大系数
    engagement_base: float = 100.0       # 大V互动归一化常数
    epsilon: float = 0.01                # 防止 MAD 为 0
    fisher_clip: float = 0.99
    spike_sigma: float = 0.3             # 动态峰值阈值 μ + kσ


@dataclass
class IndicatorConfig:
    """技术指标配置"""
    ema_period: int = 14
    rsi_period: int = 14
    rsi_method: str = "wilder"           # wilder / ema / sma
    macd_fast: int = 9
    macd_slow: int = 14
    macd_signal: int = 9
    stoch_rsi_period: int = 14
    stoch_period: int = 14
    stoch_smooth_k: int = 3
    stoch_smooth_d: int = 4


@dataclass
class CompositeConfig:
    """复合指数配置"""
    z_epsilon: float = 1e-9              # z 分数的标准差下限
    frequency_window_minutes: int = 5
    frequency_smooth_window: int = 5
    frequency_threshold: float = 100.0
    sentiment_window: int = 30


@dataclass
class HypeConfig:
    """热度评分配置"""
    weight_frequency: float = 0.35
    weight_sentiment: float = 0.15
    weight_views: float = 0.25
    weight_tweets: float = 0.25
    sentiment_multiplier: float = 20.0
    views_cap: float = 1000.0
    tweets_cap: float = 500.0


@dataclass
class HolderRiskConfig:
    """持仓风险配置"""
    interval_minutes: int = 5
    whale_threshold: float = 10_000_000
    sell_window: int = 1
    drop_threshold: float = 0.05         # 余额下跌比例
    coordinated_sell_threshold: float = 0.3
    weights: Tuple[float, float, float] = (0.2, 0.2, 0.6)
    # 巨鲸退出风险变体
    exit_weights: Tuple[float, float, float, float] = (0.2, 0.3, 0.3, 0.2)
    retail_threshold: float = 1000
    sustainability_threshold: float = 1.2
    # 买入活跃度
    buy_weights: Tuple[float, float, float] = (0.4, 0.3, 0.3)
    small_wallet_threshold: float = 9_000_000
    buy_delta_threshold: float = 10_000
    ema_period: int = 14


@dataclass
class EngineConfig:
    """引擎总配置"""
    engagement: EngagementConfig = field(default_factory=EngagementConfig)
    momentum: MomentumConfig = field(default_factory=MomentumConfig)
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    composite: CompositeConfig = field(default_factory=CompositeConfig)
    hype: HypeConfig = field(default_factory=HypeConfig)
    holders: HolderRiskConfig = field(default_factory=HolderRiskConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """
        从环境变量（和 .env 文件）加载配置

        支持的变量：
            HYPEQUANT_INTERVAL_MINUTES
            HYPEQUANT_INFLUENCE_K
            HYPEQUANT_WHALE_THRESHOLD
            HYPEQUANT_SELL_WINDOW
            HYPEQUANT_RISK_WEIGHTS   (逗号分隔，如 "0.2,0.2,0.6")
            HYPEQUANT_RSI_METHOD
            HYPEQUANT_LOG_LEVEL
        """
        load_dotenv(env_file)
        config = cls()

        interval = _env_number("INTERVAL_MINUTES", int)
        if interval is not None:
            config.engagement.interval_minutes = interval
            config.holders.interval_minutes = interval

        influence_k = _env_number("INFLUENCE_K", float)
        if influence_k is not None:
            config.engagement.influence_k = influence_k

        whale_threshold = _env_number("WHALE_THRESHOLD", float)
        if whale_threshold is not None:
            config.holders.whale_threshold = whale_threshold

        sell_window = _env_number("SELL_WINDOW", int)
        if sell_window is not None:
            config.holders.sell_window = sell_window

        weights = os.getenv(ENV_PREFIX + "RISK_WEIGHTS")
        if weights:
            parts = [p.strip() for p in weights.split(",")]
            try:
                parsed = tuple(float(p) for p in parts)
            except ValueError:
                parsed = ()
            if len(parsed) == 3:
                config.holders.weights = parsed
            else:
                logger.warning(f"忽略无效的风险权重配置：{weights}")

        rsi_method = os.getenv(ENV_PREFIX + "RSI_METHOD")
        if rsi_method:
            config.indicators.rsi_method = rsi_method.lower()

        config.log_level = os.getenv(ENV_PREFIX + "LOG_LEVEL", config.log_level)

        logger.debug(f"已加载引擎配置：{config}")
        return config


def _env_number(name: str, cast):
    """读取数值型环境变量，无效值记录警告并忽略"""
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"忽略无效的环境变量 {ENV_PREFIX}{name}={raw}")
        return None
