"""
数据模型
社交互动事件、时间序列点、持仓快照及风险评分等不可变实体

所有实体都是请求级的：由输入快照创建，计算后即丢弃，引擎本身不持久化。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


def to_utc(ts: datetime) -> datetime:
    """将 datetime 统一为 UTC 时区"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def to_millis(ts: datetime) -> int:
    """datetime 转毫秒时间戳"""
    return int(round(to_utc(ts).timestamp() * 1000))


def from_millis(ms: int) -> datetime:
    """毫秒时间戳转 UTC datetime"""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class Event:
    """单条社交互动观测（一条推文）"""
    timestamp: datetime
    likes: int = 0
    comments: int = 0
    retweets: int = 0
    impressions: int = 0          # 浏览量
    author_followers: int = 0
    author: Optional[str] = None

    @property
    def timestamp_ms(self) -> int:
        return to_millis(self.timestamp)


@dataclass(frozen=True)
class SeriesPoint:
    """时间序列点，引擎的通用输出单位"""
    time: datetime
    value: float

    @property
    def label(self) -> str:
        """ISO-8601 UTC 标签"""
        return to_utc(self.time).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Bucket:
    """固定宽度时间窗口的聚合结果"""
    start: datetime
    sum_engagement: float
    sum_views: float
    count: int
    raw_engagement: float = 0.0
    likes: int = 0
    comments: int = 0
    retweets: int = 0
    whale_engagement: float = 0.0  # 大V账号（粉丝 > 10000）的点赞 + 转发

    @property
    def start_ms(self) -> int:
        return to_millis(self.start)


@dataclass(frozen=True)
class HolderSnapshot:
    """持仓余额快照"""
    address: str
    amount: float
    timestamp: datetime


class HolderClass(Enum):
    """持仓地址分类"""
    WHALE = "whale"
    RETAIL = "retail"
    LP = "lp"


@dataclass(frozen=True)
class RiskPoint:
    """抛售风险序列中的一个点"""
    time: datetime
    entropy: float                  # 归一化集中度风险（0=均匀，1=完全集中）
    coordinated_sell_ratio: float   # 余额下跌 ≥5% 的持有人比例
    coordinated_sell_flag: int
    liquidity_risk: float           # 巨鲸持仓 / 可用流动性，上限 1
    score: float


@dataclass(frozen=True)
class WhaleExitRiskPoint(RiskPoint):
    """带巨鲸/散户资金流的风险点"""
    whale_retail_ratio: float = 0.0
    sustainability_score: float = 0.0


@dataclass(frozen=True)
class MACDPoint:
    """MACD 指标点"""
    time: datetime
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class StochRSIPoint:
    """随机 RSI 点"""
    time: datetime
    k: float
    d: Optional[float] = None


@dataclass(frozen=True)
class MetricsBin:
    """FOMO 指数的输入：每个时间桶的 SEI、相对互动峰值和浏览量"""
    time: datetime
    sei: float
    res: float
    views: float


@dataclass(frozen=True)
class BuyActivityPoint:
    """买入活跃度"""
    time: datetime
    unique_buyers: int
    net_growth: float
    diversity_score: float
    buy_score: float
    retail_churn_ratio: float
    whale_churn_ratio: float


@dataclass
class CategoryHoldings:
    """按类别（巨鲸/散户/LP）聚合的时间序列，键为桶起始时间"""
    whales: Dict[datetime, float] = field(default_factory=dict)
    retail: Dict[datetime, float] = field(default_factory=dict)
    lps: Dict[datetime, float] = field(default_factory=dict)


class MetricKind(Enum):
    """引擎输出的指标名称"""
    SEI = "sei"
    SEI_VELOCITY = "sei_velocity"
    SEI_EMA = "sei_ema"
    SEI_SPIKES = "sei_spikes"
    FOMO_INDEX = "fomo_index"
    MACD = "macd"
    RSI = "rsi"
    STOCH_RSI = "stoch_rsi"
    SELL_OFF_RISK = "sell_off_risk"
    HYPE_SCORE = "hype_score"
    TWEET_FREQUENCY = "tweet_frequency"
