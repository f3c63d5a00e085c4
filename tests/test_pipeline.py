"""
流水线集成测试

测试指标分组、报告校验和外部数据获取失败的处理
"""

import math
import random
from datetime import datetime, timedelta, timezone
import sys
from pathlib import Path

import pytest

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from hypequant.exceptions import ContractViolationError, UpstreamFetchError
from hypequant.models import Event, HolderSnapshot, MetricKind, RiskPoint
from hypequant.pipeline import (
    BUNDLE_SCHEMA,
    ComputationResult,
    HolderRiskPipeline,
    MetricBundle,
    SocialAnalyticsPipeline,
    SocialReport,
    compute_holders,
    compute_social,
)

T0 = datetime(2025, 7, 14, 13, 0, tzinfo=timezone.utc)


@pytest.fixture
def events():
    """两小时内的随机事件"""
    rng = random.Random(2025)
    return [
        Event(
            timestamp=T0 + timedelta(minutes=rng.uniform(0, 120)),
            likes=rng.randint(0, 500),
            comments=rng.randint(0, 50),
            retweets=rng.randint(0, 100),
            impressions=rng.randint(0, 20_000),
            author_followers=rng.randint(0, 100_000),
        )
        for _ in range(300)
    ]


@pytest.fixture
def snapshots():
    result = []
    for i in range(6):
        for step in range(4):
            amount = 20_000_000.0 if i == 0 else 1000.0 * (i + 1)
            if step == 3 and i < 3:
                amount *= 0.5
            result.append(HolderSnapshot(f"addr{i}", amount, T0 + timedelta(minutes=5 * step)))
    return result


def assert_ascending(series):
    times = [p.time for p in series]
    assert times == sorted(times)


class TestSocialAnalyticsPipeline:
    """测试社交指标流水线"""

    @pytest.mark.parametrize("bundle", list(MetricBundle))
    def test_bundle_schema(self, events, bundle):
        """测试每个分组输出固定的指标集合"""
        report = SocialAnalyticsPipeline().run(events, bundle)
        assert set(report.metrics) == BUNDLE_SCHEMA[bundle]

    def test_string_bundle(self, events):
        """测试字符串分组名"""
        report = SocialAnalyticsPipeline().run(events, "fomo")
        assert report.bundle is MetricBundle.FOMO

    def test_unknown_bundle(self, events):
        """测试未知分组"""
        with pytest.raises(ContractViolationError):
            SocialAnalyticsPipeline().run(events, "impression")

    def test_series_ascending(self, events):
        """测试所有输出序列按时间升序"""
        shuffled = events[:]
        random.Random(9).shuffle(shuffled)
        report = SocialAnalyticsPipeline().run(shuffled, MetricBundle.ALL)

        for kind, value in report.metrics.items():
            if kind is not MetricKind.HYPE_SCORE:
                assert_ascending(value)
        assert 0.0 <= report[MetricKind.HYPE_SCORE] <= 100.0

    def test_idempotent(self, events):
        """测试相同输入两次运行结果相同"""
        pipeline = SocialAnalyticsPipeline()
        first = pipeline.run(events, MetricBundle.ALL)
        second = pipeline.run(events, MetricBundle.ALL)
        assert first.metrics == second.metrics

    def test_rsi_bounds(self, events):
        """测试 SEI 上的 RSI 在 [0, 100] 内"""
        report = SocialAnalyticsPipeline().run(events, MetricBundle.FOMO)
        assert report[MetricKind.RSI]
        assert all(0.0 <= p.value <= 100.0 for p in report[MetricKind.RSI])

    def test_empty_events(self):
        """测试空输入降级为空序列"""
        report = SocialAnalyticsPipeline().run([], MetricBundle.ALL)
        assert report[MetricKind.SEI] == []
        assert report[MetricKind.FOMO_INDEX] == []
        assert report[MetricKind.HYPE_SCORE] == 0.0

    def test_stage_timings(self, events):
        """测试阶段计时被记录"""
        pipeline = SocialAnalyticsPipeline()
        pipeline.run(events, MetricBundle.SEI)
        stats = pipeline.timer.get_performance_stats()
        assert "sei_total" in stats
        assert "momentum_total" in stats

    def test_stage_timings_per_run(self, events):
        """测试重复运行时计时只保留最近一次"""
        pipeline = SocialAnalyticsPipeline()
        for _ in range(3):
            pipeline.run(events, MetricBundle.SEI)
        assert len(pipeline.timer.stage_times["sei"]) == 1
        assert len(pipeline.timer.stage_times["momentum"]) == 1


class TestSocialReport:
    """测试报告校验"""

    def test_missing_metric(self):
        """测试缺少指标时校验失败"""
        report = SocialReport(bundle=MetricBundle.FREQUENCY)
        with pytest.raises(ContractViolationError):
            report.validate()

    def test_extra_metric(self):
        """测试多余指标时校验失败"""
        report = SocialReport(
            bundle=MetricBundle.FREQUENCY,
            metrics={MetricKind.TWEET_FREQUENCY: [], MetricKind.SEI: []},
        )
        with pytest.raises(ContractViolationError):
            report.validate()


class TestHolderRiskPipeline:
    """测试持仓风险流水线"""

    def test_report(self, snapshots):
        """测试持仓风险报告"""
        report = HolderRiskPipeline().run(snapshots, liquidity=1e9)

        assert len(report.risk) == 4
        assert len(report.risk_ema) == 4
        assert_ascending(report.risk)
        assert report.risk[3].coordinated_sell_ratio == pytest.approx(0.5)
        assert report.risk[3].coordinated_sell_flag == 1
        assert report.holder_counts.whales[T0] == 1
        assert report.holder_counts.retail[T0] == 5
        assert len(report.buy_activity) == 4

    def test_keyed_by_metric(self, snapshots):
        """测试按指标名称取风险序列"""
        report = HolderRiskPipeline().run(snapshots, liquidity=1e9)
        assert report[MetricKind.SELL_OFF_RISK] is report.risk
        assert set(report.metrics) == {MetricKind.SELL_OFF_RISK}

    def test_stage_timings_per_run(self, snapshots):
        """测试重复运行时计时只保留最近一次"""
        pipeline = HolderRiskPipeline()
        pipeline.run(snapshots, liquidity=1e9)
        pipeline.run(snapshots, liquidity=1e9)
        assert len(pipeline.timer.stage_times["sell_off_risk"]) == 1

    def test_lp_excluded(self, snapshots):
        """测试 LP 地址单独统计"""
        report = HolderRiskPipeline().run(snapshots, liquidity=1e9, lp_addresses={"addr5"})
        assert report.holder_counts.lps[T0] == 1
        assert report.holder_counts.retail[T0] == 4
        assert report.risk[3].coordinated_sell_ratio == pytest.approx(3 / 5)


class TestComputationResult:
    """测试外部数据获取"""

    def test_social_success(self, events):
        """测试获取成功"""
        result = compute_social(lambda: events, MetricBundle.SEI)
        assert result.ok
        assert result.error is None
        assert set(result.value.metrics) == BUNDLE_SCHEMA[MetricBundle.SEI]

    def test_social_raw_records(self):
        """测试原始记录经过验证器解析"""
        records = [
            {"timestamp": "2025-07-14T13:00:00Z", "likes": "1K", "authorFollowers": 20_000},
            {"timestamp": "2025-07-14T13:06:00Z", "likes": 5, "authorFollowers": 100},
        ]
        result = compute_social(lambda: records, MetricBundle.SEI)
        assert result.ok
        assert len(result.value[MetricKind.SEI]) == 2

    def test_social_non_finite_records(self):
        """测试无穷大或越界的原始字段不会中断计算"""
        records = [
            {"timestamp": float("inf"), "likes": 1},
            {"timestamp": 1e20, "likes": float("inf"), "views": "1e400"},
            {"timestamp": "2025-07-14T13:00:00Z", "likes": "nan"},
        ]
        result = compute_social(lambda: records, MetricBundle.SEI)
        assert result.ok
        assert all(math.isfinite(p.value) for p in result.value[MetricKind.SEI])

    def test_upstream_failure(self):
        """测试上游失败转换为错误结果"""
        calls = []

        def fetch():
            calls.append(1)
            raise UpstreamFetchError("status 502", source="holders-api")

        result = compute_holders(fetch, liquidity=1e9)

        assert result == ComputationResult(ok=False, error="holders-api: status 502")
        # 不重试
        assert calls == [1]

    def test_generic_failure(self):
        """测试其他异常同样转换为错误结果"""
        def fetch():
            raise ConnectionError("timed out")

        result = compute_social(fetch)
        assert not result.ok
        assert "timed out" in result.error

    def test_holders_success(self, snapshots):
        """测试持仓数据获取成功"""
        result = compute_holders(lambda: snapshots, liquidity=lambda t: 1e9)
        assert result.ok
        assert all(isinstance(p, RiskPoint) for p in result.value.risk)
