"""
社交互动评分
计算每个时间桶的社交互动指数 (SEI)

单条事件：
    raw       = likes + comments + 2*retweets + 0.5*impressions
    spam      = raw / (followers + 1)          低粉丝账号（机器人）惩罚
    cap       = tanh(followers / K)            大账号影响力饱和
    weighted  = raw * spam * cap

每个时间桶：
    SEI = sum(weighted) / count                使用均值，桶宽度不影响量级
"""

import math
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from ..config import EngagementConfig
from ..models import Bucket, Event, MetricsBin, SeriesPoint
from ..processing.resampler import bucket_events
from ..utils.numeric import finite_or_zero, safe_div


class EngagementScorer:
    """互动评分器"""

    def __init__(self, config: Optional[EngagementConfig] = None):
        self.config = config or EngagementConfig()

    def raw_engagement(self, event: Event) -> float:
        """原始互动量"""
        return (
            event.likes
            + event.comments
            + self.config.retweet_weight * event.retweets
            + self.config.impression_weight * event.impressions
        )

    @staticmethod
    def spam_penalty(raw: float, followers: int) -> float:
        """垃圾账号惩罚：互动量 / (粉丝数 + 1)"""
        return raw / (followers + 1)

    def influence_cap(self, followers: int) -> float:
        """影响力上限：tanh(followers / K)"""
        return math.tanh(followers / self.config.influence_k)

    def weighted_engagement(self, event: Event) -> float:
        """加权互动量"""
        raw = self.raw_engagement(event)
        followers = max(event.author_followers, 0)
        weighted = raw * self.spam_penalty(raw, followers) * self.influence_cap(followers)
        return finite_or_zero(weighted)

    def volume_scaling(self, count: int) -> float:
        """成交量缩放：ln(1 + count / N)"""
        return math.log1p(count / self.config.volume_baseline)

    def bucket(self, events: Sequence[Event], interval_minutes: Optional[float] = None) -> List[Bucket]:
        """按时间桶聚合加权互动量"""
        return bucket_events(
            events,
            interval_minutes or self.config.interval_minutes,
            engagement_fn=self.weighted_engagement,
            raw_fn=self.raw_engagement,
            whale_followers=self.config.whale_followers,
        )

    def sei_from_buckets(self, buckets: Sequence[Bucket], volume_scaling: bool = False) -> List[SeriesPoint]:
        """由时间桶计算 SEI 序列"""
        series = []
        for b in buckets:
            sei = safe_div(b.sum_engagement, b.count)
            if volume_scaling:
                sei *= self.volume_scaling(b.count)
            series.append(SeriesPoint(time=b.start, value=finite_or_zero(sei)))
        return series

    def compute_sei(
        self,
        events: Sequence[Event],
        interval_minutes: Optional[float] = None,
        volume_scaling: bool = False,
    ) -> List[SeriesPoint]:
        """
        计算社交互动指数 (SEI)

        Args:
            events: 事件列表
            interval_minutes: 时间桶宽度（默认使用配置）
            volume_scaling: 是否乘以 ln(1 + count / N)，用于比较事件数差异较大的时间桶

        Returns:
            按时间升序排列的 SEI 序列
        """
        buckets = self.bucket(events, interval_minutes)
        series = self.sei_from_buckets(buckets, volume_scaling)
        logger.info(f"SEI 计算完成：{len(events)} 条事件，{len(series)} 个时间桶")
        return series

    def compute_metrics_bins(
        self,
        events: Sequence[Event],
        interval_minutes: Optional[float] = None,
        res_window: Optional[int] = None,
    ) -> List[MetricsBin]:
        """
        计算 FOMO 指数所需的时间桶指标

        RES（相对互动峰值）= (E - MA) / MA，E 为当前桶的原始互动总量，
        MA 为前 res_window 个桶的均值；前面桶数不足或 MA <= 0 时为 0。

        Args:
            events: 事件列表
            interval_minutes: 时间桶宽度
            res_window: RES 的滚动窗口（桶数）

        Returns:
            MetricsBin 列表
        """
        window = res_window or self.config.res_window
        buckets = self.bucket(events, interval_minutes)
        if not buckets:
            return []

        raw = np.array([b.raw_engagement for b in buckets], dtype=np.float64)
        bins = []
        for i, b in enumerate(buckets):
            res = 0.0
            if i >= window:
                ma = float(raw[i - window:i].mean())
                res = (raw[i] - ma) / ma if ma > 0 else 0.0
            bins.append(MetricsBin(
                time=b.start,
                sei=finite_or_zero(safe_div(b.sum_engagement, b.count)),
                res=finite_or_zero(res),
                views=b.sum_views,
            ))
        return bins

    def tweet_counts(self, events: Sequence[Event], interval_minutes: Optional[float] = None) -> List[SeriesPoint]:
        """每个时间桶的推文数量"""
        return [SeriesPoint(time=b.start, value=float(b.count)) for b in self.bucket(events, interval_minutes)]

    def view_totals(self, events: Sequence[Event], interval_minutes: Optional[float] = None) -> List[SeriesPoint]:
        """每个时间桶的浏览量总和"""
        return [SeriesPoint(time=b.start, value=b.sum_views) for b in self.bucket(events, interval_minutes)]
