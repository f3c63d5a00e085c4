"""
复合指数
FOMO 指数（多指标 z 分数合成）与 0–100 热度评分
"""

from typing import Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

from ..config import CompositeConfig, HypeConfig
from ..data_validation import ensure_ascending
from ..models import MetricsBin, SeriesPoint, to_millis
from ..utils.numeric import finite_or_zero, safe_div
from .indicators import sma


def _z_scores(values: np.ndarray, epsilon: float) -> np.ndarray:
    """总体 z 分数，标准差下限为 epsilon"""
    sigma = max(float(values.std()), epsilon)
    return (values - values.mean()) / sigma


def fomo_index(bins: Sequence[MetricsBin], epsilon: float = 1e-9) -> List[SeriesPoint]:
    """
    复合 FOMO 指数

    FOMO(t) = (Z_SEI + Z_RES + Z_Views) / 3，z 分数在全部时间桶上计算

    Args:
        bins: 时间桶指标
        epsilon: 标准差下限，避免除零

    Returns:
        按时间升序排列的 FOMO 序列
    """
    bins = sorted(bins, key=lambda b: to_millis(b.time))
    if not bins:
        return []

    z_sei = _z_scores(np.array([b.sei for b in bins], dtype=np.float64), epsilon)
    z_res = _z_scores(np.array([b.res for b in bins], dtype=np.float64), epsilon)
    z_views = _z_scores(np.array([b.views for b in bins], dtype=np.float64), epsilon)
    composite = (z_sei + z_res + z_views) / 3

    return [SeriesPoint(time=b.time, value=finite_or_zero(v)) for b, v in zip(bins, composite)]


def hype_score(
    tweet_frequency_trend: float,
    sentiment_trend: float,
    views: float,
    tweet_count: float,
    config: Optional[HypeConfig] = None,
) -> float:
    """
    热度评分 (0–100)

    Args:
        tweet_frequency_trend: 推文频率趋势（百分比，上限 100）
        sentiment_trend: 情绪趋势（乘以 20，上限 100）
        views: 浏览量（1000 以内线性，上限 100）
        tweet_count: 推文数（500 以内线性，上限 100）
        config: 权重配置（默认 0.35/0.15/0.25/0.25）

    Returns:
        热度评分
    """
    config = config or HypeConfig()

    normalized_frequency = min(finite_or_zero(tweet_frequency_trend), 100.0)
    normalized_sentiment = min(finite_or_zero(sentiment_trend) * config.sentiment_multiplier, 100.0)
    normalized_views = min(finite_or_zero(views) / config.views_cap * 100, 100.0)
    normalized_tweets = min(finite_or_zero(tweet_count) / config.tweets_cap * 100, 100.0)

    score = (
        normalized_frequency * config.weight_frequency
        + normalized_sentiment * config.weight_sentiment
        + normalized_views * config.weight_views
        + normalized_tweets * config.weight_tweets
    )
    return float(min(max(score, 0.0), 100.0))


def tweet_frequency_trend(
    counts: Sequence[SeriesPoint],
    window_minutes: float = 5,
    smooth_window: int = 5,
    threshold: float = 100.0,
) -> List[SeriesPoint]:
    """
    推文频率趋势（百分比）

    对每个点统计前 window_minutes 分钟内（含当前点）的推文数，
    再做尾随简单平均，最后按 threshold 归一化为百分比（上限 100）。
    """
    points = ensure_ascending(counts)
    if not points:
        return []

    window_ms = window_minutes * 60_000
    times = [to_millis(p.time) for p in points]
    raw = []
    start = 0
    running = 0.0
    for i, point in enumerate(points):
        running += point.value
        while times[start] < times[i] - window_ms:
            running -= points[start].value
            start += 1
        raw.append(SeriesPoint(time=point.time, value=running))

    smoothed = sma(raw, smooth_window)
    return [
        SeriesPoint(time=p.time, value=min(safe_div(p.value, threshold) * 100, 100.0))
        for p in smoothed
    ]


def sentiment_trend(series: Sequence[SeriesPoint], window: int = 30) -> List[SeriesPoint]:
    """情绪趋势：尾随窗口内情绪值之和"""
    points = ensure_ascending(series)
    values = np.array([p.value for p in points], dtype=np.float64)
    cumulative = np.concatenate([[0.0], np.cumsum(values)])
    return [
        SeriesPoint(time=p.time, value=finite_or_zero(cumulative[i + 1] - cumulative[max(0, i - window + 1)]))
        for i, p in enumerate(points)
    ]


def average_views_per_tweet(views: Sequence[SeriesPoint], counts: Sequence[SeriesPoint]) -> float:
    """平均每条推文的浏览量"""
    total_views = sum(finite_or_zero(p.value) for p in views)
    total_tweets = sum(finite_or_zero(p.value) for p in counts)
    return safe_div(total_views, total_tweets)


def average_views_plot(views: Sequence[SeriesPoint], counts: Sequence[SeriesPoint]) -> List[SeriesPoint]:
    """按时间对齐的每条推文平均浏览量序列（只保留两边都有的时间点）"""
    views_by_time: Dict[int, float] = {to_millis(p.time): p.value for p in views}
    result = []
    for point in ensure_ascending(counts):
        key = to_millis(point.time)
        if key in views_by_time:
            result.append(SeriesPoint(time=point.time, value=safe_div(views_by_time[key], point.value)))
    return result


class CompositeIndexBuilder:
    """复合指数构建器"""

    def __init__(self, config: Optional[CompositeConfig] = None, hype_config: Optional[HypeConfig] = None):
        self.config = config or CompositeConfig()
        self.hype_config = hype_config or HypeConfig()

    def fomo_index(self, bins: Sequence[MetricsBin]) -> List[SeriesPoint]:
        return fomo_index(bins, self.config.z_epsilon)

    def frequency_trend(self, counts: Sequence[SeriesPoint]) -> List[SeriesPoint]:
        return tweet_frequency_trend(
            counts,
            self.config.frequency_window_minutes,
            self.config.frequency_smooth_window,
            self.config.frequency_threshold,
        )

    def hype_score(
        self,
        counts: Sequence[SeriesPoint],
        views: Sequence[SeriesPoint],
        sentiment: Sequence[SeriesPoint] = (),
        recent_buckets: int = 15,
    ) -> float:
        """
        由推文数、浏览量和情绪序列计算当前热度评分

        Args:
            counts: 每个时间桶的推文数
            views: 每个时间桶的浏览量
            sentiment: 情绪序列（可选）
            recent_buckets: 计算平均浏览量时使用的最近时间桶数
        """
        frequency = self.frequency_trend(counts)
        current_frequency = frequency[-1].value if frequency else 0.0

        trend = sentiment_trend(sentiment, self.config.sentiment_window)
        current_sentiment = trend[-1].value if trend else 0.0

        recent_views = ensure_ascending(views)[-recent_buckets:]
        recent_counts = ensure_ascending(counts)[-recent_buckets:]
        avg_views = average_views_per_tweet(recent_views, recent_counts)
        total_tweets = sum(p.value for p in counts)

        score = hype_score(current_frequency, current_sentiment, avg_views, total_tweets, self.hype_config)
        logger.info(f"热度评分：{score:.2f}（频率 {current_frequency:.2f}，情绪 {current_sentiment:.2f}，"
                    f"平均浏览 {avg_views:.1f}，推文 {total_tweets:.0f}）")
        return score
