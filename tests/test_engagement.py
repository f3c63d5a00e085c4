"""
互动评分单元测试

测试单条事件评分、SEI 和 FOMO 时间桶指标
"""

import math
import random
from datetime import datetime, timedelta, timezone
import sys
from pathlib import Path

import pytest

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from hypequant.config import EngagementConfig
from hypequant.factors import EngagementScorer
from hypequant.models import Event

T0 = datetime(2025, 7, 14, 13, 0, tzinfo=timezone.utc)


def make_event(minutes: float, **kwargs) -> Event:
    return Event(timestamp=T0 + timedelta(minutes=minutes), **kwargs)


@pytest.fixture
def scorer():
    return EngagementScorer()


class TestEventScore:
    """测试单条事件评分"""

    def test_raw_engagement(self, scorer):
        """测试原始互动量公式"""
        event = make_event(0, likes=10, comments=5, retweets=3, impressions=100)
        assert scorer.raw_engagement(event) == 10 + 5 + 6 + 50

    def test_influence_cap_saturates(self, scorer):
        """测试影响力上限饱和"""
        assert scorer.influence_cap(0) == 0
        assert scorer.influence_cap(50_000) == pytest.approx(math.tanh(10))
        assert scorer.influence_cap(50_000) <= 1.0

    def test_weighted_engagement(self, scorer):
        """测试加权互动量 = raw * spam * cap"""
        event = make_event(0, likes=100, author_followers=5000)
        expected = 100 * (100 / 5001) * math.tanh(1.0)
        assert scorer.weighted_engagement(event) == pytest.approx(expected)

    def test_zero_followers(self, scorer):
        """测试零粉丝账号的互动量被完全抑制"""
        event = make_event(0, likes=1000)
        assert scorer.weighted_engagement(event) == 0.0

    def test_custom_influence_constant(self):
        """测试可配置的影响力常数 K"""
        scorer = EngagementScorer(EngagementConfig(influence_k=1000))
        assert scorer.influence_cap(1000) == pytest.approx(math.tanh(1.0))


class TestSEI:
    """测试社交互动指数"""

    def test_empty_events(self, scorer):
        """测试空输入"""
        assert scorer.compute_sei([]) == []

    def test_single_spike_scenario(self, scorer):
        """测试单个爆款帖子主导时间桶 SEI"""
        low = [make_event(i * 0.2, likes=1, author_followers=100) for i in range(10)]
        spike = make_event(2.5, likes=10_000, author_followers=50_000)
        series = scorer.compute_sei(low + [spike])

        assert len(series) == 1
        low_total = sum(scorer.weighted_engagement(e) for e in low)
        spike_score = scorer.weighted_engagement(spike)

        assert spike_score > 100 * low_total
        assert series[0].value == pytest.approx((low_total + spike_score) / 11)
        # 影响力上限约为 1
        assert spike_score <= 10_000 * (10_000 / 50_001) * 1.0

    def test_sei_is_mean(self, scorer):
        """测试 SEI 取均值而非总和"""
        one = [make_event(0, likes=50, author_followers=5000)]
        two = one + [make_event(1, likes=50, author_followers=5000)]

        assert scorer.compute_sei(one)[0].value == pytest.approx(scorer.compute_sei(two)[0].value)

    def test_volume_scaling(self, scorer):
        """测试成交量缩放 ln(1 + count / N)"""
        events = [make_event(i * 0.1, likes=50, author_followers=5000) for i in range(10)]
        plain = scorer.compute_sei(events)[0].value
        scaled = scorer.compute_sei(events, volume_scaling=True)[0].value
        assert scaled == pytest.approx(plain * math.log(2))

    def test_shuffled_ordering(self, scorer):
        """测试乱序输入输出按时间升序且结果一致"""
        events = [make_event(m, likes=m + 1, author_followers=1000 * m) for m in range(0, 90, 4)]
        shuffled = events[:]
        random.Random(3).shuffle(shuffled)

        series = scorer.compute_sei(shuffled)
        times = [p.time for p in series]
        assert times == sorted(times)
        assert series == scorer.compute_sei(events)


class TestMetricsBins:
    """测试 FOMO 时间桶指标"""

    def test_res_needs_window(self, scorer):
        """测试前面桶数不足时 RES 为 0"""
        events = [make_event(5 * i, likes=10) for i in range(3)]
        bins = scorer.compute_metrics_bins(events, res_window=5)
        assert [b.res for b in bins] == [0.0, 0.0, 0.0]

    def test_res_relative_spike(self, scorer):
        """测试 RES = (E - MA) / MA"""
        events = [make_event(5 * i, likes=10) for i in range(3)]
        events.append(make_event(15, likes=30))
        bins = scorer.compute_metrics_bins(events, res_window=3)

        assert bins[-1].res == pytest.approx(2.0)
        assert bins[-1].views == 0

    def test_counts_and_views(self, scorer):
        """测试推文数与浏览量序列"""
        events = [
            make_event(0, impressions=100),
            make_event(1, impressions=50),
            make_event(6, impressions=10),
        ]
        assert [p.value for p in scorer.tweet_counts(events)] == [2.0, 1.0]
        assert [p.value for p in scorer.view_totals(events)] == [150.0, 10.0]
