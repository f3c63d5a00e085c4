"""
重采样模块

将不规则时间戳的事件聚合为固定宽度的时间桶
"""

from .resampler import (
    bucket_events,
    bucket_series,
    floor_time,
    interval_ms,
)

__all__ = [
    'bucket_events',
    'bucket_series',
    'floor_time',
    'interval_ms',
]
