"""
重采样模块
将无序的时间戳事件划分为固定宽度、按时间升序排列的时间桶

时间桶键：floor(timestamp_ms / interval_ms) * interval_ms
不包含事件的时间桶不输出（稀疏序列，不补零）。
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

import pandas as pd
from loguru import logger

from ..exceptions import ContractViolationError
from ..models import Bucket, Event, SeriesPoint, from_millis, to_millis


EventScore = Callable[[Event], float]


def interval_ms(interval_minutes: float) -> int:
    """时间桶宽度（毫秒）"""
    if interval_minutes is None or interval_minutes <= 0:
        raise ContractViolationError(f"时间间隔必须为正数：{interval_minutes}")
    return int(interval_minutes * 60 * 1000)


def floor_millis(ms: int, width_ms: int) -> int:
    """向下取整到时间桶起点"""
    return (ms // width_ms) * width_ms


def floor_time(ts: datetime, interval_minutes: float) -> datetime:
    """将时间向下取整到所在时间桶的起点"""
    width = interval_ms(interval_minutes)
    return from_millis(floor_millis(to_millis(ts), width))


def _interaction_count(event: Event) -> float:
    return float(event.likes + event.comments + event.retweets)


def bucket_events(
    events: Sequence[Event],
    interval_minutes: float,
    engagement_fn: Optional[EventScore] = None,
    raw_fn: Optional[EventScore] = None,
    whale_followers: int = 10_000,
) -> List[Bucket]:
    """
    按固定时间间隔聚合事件

    Args:
        events: 事件列表（任意顺序）
        interval_minutes: 时间桶宽度（分钟）
        engagement_fn: 每个事件计入 sum_engagement 的评分函数
        raw_fn: 每个事件计入 raw_engagement 的评分函数
        whale_followers: 大V账号粉丝门槛（严格大于）

    Returns:
        按时间升序排列的 Bucket 列表，空输入返回空列表
    """
    width = interval_ms(interval_minutes)
    if not events:
        return []

    engagement_fn = engagement_fn or _interaction_count
    raw_fn = raw_fn or _interaction_count

    df = pd.DataFrame({
        "key": [floor_millis(e.timestamp_ms, width) for e in events],
        "engagement": [engagement_fn(e) for e in events],
        "raw": [raw_fn(e) for e in events],
        "views": [float(e.impressions) for e in events],
        "likes": [e.likes for e in events],
        "comments": [e.comments for e in events],
        "retweets": [e.retweets for e in events],
        "whale": [
            float(e.likes + e.retweets) if e.author_followers > whale_followers else 0.0
            for e in events
        ],
    })

    grouped = df.groupby("key", sort=True)
    sums = grouped.sum()
    counts = grouped.size()

    buckets = [
        Bucket(
            start=from_millis(int(key)),
            sum_engagement=float(row["engagement"]),
            sum_views=float(row["views"]),
            count=int(counts[key]),
            raw_engagement=float(row["raw"]),
            likes=int(row["likes"]),
            comments=int(row["comments"]),
            retweets=int(row["retweets"]),
            whale_engagement=float(row["whale"]),
        )
        for key, row in sums.iterrows()
    ]

    logger.debug(f"重采样完成：{len(events)} 条事件 -> {len(buckets)} 个时间桶（{interval_minutes} 分钟）")
    return buckets


def bucket_series(
    points: Iterable[SeriesPoint],
    interval_minutes: float,
    how: str = "sum",
) -> List[SeriesPoint]:
    """
    对已有的时间序列重新分桶

    Args:
        points: 时间序列点
        interval_minutes: 时间桶宽度（分钟）
        how: 聚合方式（sum / mean）

    Returns:
        按时间升序排列的序列
    """
    if how not in ("sum", "mean"):
        raise ContractViolationError(f"未知的聚合方式：{how}")

    width = interval_ms(interval_minutes)
    points = list(points)
    if not points:
        return []

    series = pd.Series(
        [p.value for p in points],
        index=[floor_millis(to_millis(p.time), width) for p in points],
    )
    grouped = series.groupby(level=0, sort=True)
    aggregated = grouped.sum() if how == "sum" else grouped.mean()

    return [SeriesPoint(time=from_millis(int(key)), value=float(value)) for key, value in aggregated.items()]
