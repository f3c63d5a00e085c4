"""
数据验证和清洗模块
将外部数据源交付的原始记录转换为不可变的 Event / HolderSnapshot
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from loguru import logger

from .exceptions import ContractViolationError
from .models import Event, HolderSnapshot, SeriesPoint, to_utc


_SUFFIXES = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}
_MALFORMED_MINUTES = re.compile(r"T(\d{2}):(\d{2})\.(\d{3})")


def parse_count(value: Any) -> Optional[float]:
    """
    解析计数字段

    支持 int/float 以及缩写字符串（"1.2K"、"3M"、"1,024"）。

    Returns:
        数值，无法解析返回 None
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).strip().replace(",", "").upper()
    if not text:
        return None

    multiplier = 1
    if text[-1] in _SUFFIXES:
        multiplier = _SUFFIXES[text[-1]]
        text = text[:-1]

    try:
        result = float(text) * multiplier
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    解析时间戳

    支持 datetime、毫秒时间戳、ISO 字符串（包括缺少秒的 "HH:MM.000" 格式，
    无时区时按 UTC 处理）。

    Returns:
        UTC datetime，无法解析返回 None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    # "2025-07-14T13:09.000+00:00" -> "2025-07-14T13:09:00.000+00:00"
    text = _MALFORMED_MINUTES.sub(r"T\1:\2:00.\3", text)

    try:
        ts = pd.Timestamp(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC").to_pydatetime()


class EventValidator:
    """社交互动事件验证器"""

    COUNT_FIELDS = {
        "likes": ("likes",),
        "comments": ("comments", "comment"),
        "retweets": ("retweets", "retweet"),
        "impressions": ("impressions", "views"),
        "author_followers": ("authorFollowers", "author_followers", "followers"),
    }

    def __init__(self, now: Optional[datetime] = None):
        """
        Args:
            now: 时间戳缺失时的替代时间（默认：当前处理时间）
        """
        self.now = now

        # 验证统计
        self.validation_stats = {
            "total_rows": 0,
            "valid_rows": 0,
            "timestamp_substituted": 0,
            "count_repaired": 0,
        }

    def _processing_time(self) -> datetime:
        return self.now or datetime.now(timezone.utc)

    def _read_count(self, record: Dict[str, Any], keys: Sequence[str]) -> int:
        raw = None
        for key in keys:
            if key in record:
                raw = record[key]
                break

        value = parse_count(raw)
        if value is None or value < 0:
            if raw is not None:
                self.validation_stats["count_repaired"] += 1
                logger.warning(f"无效计数 {keys[0]}={raw!r}，按 0 处理")
            return 0
        return int(value)

    def parse_event(self, record: Dict[str, Any]) -> Event:
        """
        解析单条记录

        Args:
            record: 原始记录

        Returns:
            Event
        """
        timestamp = parse_timestamp(record.get("timestamp"))
        if timestamp is None:
            timestamp = self._processing_time()
            self.validation_stats["timestamp_substituted"] += 1
            logger.warning(f"时间戳缺失或无效：{record.get('timestamp')!r}，使用当前处理时间")

        counts = {name: self._read_count(record, keys) for name, keys in self.COUNT_FIELDS.items()}
        author = record.get("author") or record.get("username")

        return Event(timestamp=timestamp, author=author, **counts)

    def parse_events(self, records: Iterable[Dict[str, Any]]) -> List[Event]:
        """
        批量解析记录

        Args:
            records: 原始记录列表

        Returns:
            Event 列表（保持输入顺序）
        """
        substituted_before = self.validation_stats["timestamp_substituted"]
        events = [self.parse_event(record) for record in records]
        substituted = self.validation_stats["timestamp_substituted"] - substituted_before

        self.validation_stats["total_rows"] += len(events)
        self.validation_stats["valid_rows"] += len(events) - substituted
        logger.info(f"解析完成：{len(events)} 条事件，{substituted} 条时间戳被替换")
        return events

    def get_validation_report(self) -> str:
        """获取验证报告"""
        report = f"""
        === 事件验证报告 ===
        总行数：{self.validation_stats["total_rows"]}
        有效行数：{self.validation_stats["valid_rows"]}
        替换时间戳：{self.validation_stats["timestamp_substituted"]}
        修复计数：{self.validation_stats["count_repaired"]}
        """
        return report


class HolderValidator:
    """持仓快照验证器"""

    def __init__(self):
        self.validation_stats = {
            "total_rows": 0,
            "skipped_rows": 0,
        }

    def _snapshot(self, address: str, amount: Any, timestamp: Any) -> Optional[HolderSnapshot]:
        value = parse_count(amount)
        ts = parse_timestamp(timestamp)
        self.validation_stats["total_rows"] += 1

        if value is None or ts is None:
            self.validation_stats["skipped_rows"] += 1
            logger.warning(f"跳过无效快照：address={address}, amount={amount!r}, time={timestamp!r}")
            return None
        return HolderSnapshot(address=address, amount=value, timestamp=ts)

    def parse_holders(self, records: Iterable[Dict[str, Any]]) -> List[HolderSnapshot]:
        """
        解析持仓记录

        支持两种格式：
        - 扁平格式: {"address", "amount", "timestamp"}
        - 按地址格式: {"address", "amount": [...], "time": [...]}

        Raises:
            ContractViolationError: amount 与 time 数组长度不一致
        """
        snapshots: List[HolderSnapshot] = []

        for record in records:
            address = str(record.get("address", ""))
            amounts = record.get("amount")

            if isinstance(amounts, (list, tuple)):
                times = record.get("time") or []
                if len(times) != len(amounts):
                    raise ContractViolationError(
                        f"地址 {address} 的 amount({len(amounts)}) 与 time({len(times)}) 长度不一致"
                    )
                for amount, ts in zip(amounts, times):
                    snapshot = self._snapshot(address, amount, ts)
                    if snapshot:
                        snapshots.append(snapshot)
            else:
                snapshot = self._snapshot(address, amounts, record.get("timestamp", record.get("time")))
                if snapshot:
                    snapshots.append(snapshot)

        logger.info(f"解析完成：{len(snapshots)} 个持仓快照，"
                    f"跳过 {self.validation_stats['skipped_rows']} 个")
        return snapshots


def ensure_ascending(points: Iterable[SeriesPoint]) -> List[SeriesPoint]:
    """按时间升序排序，返回新列表"""
    return sorted(points, key=lambda p: to_utc(p.time))
