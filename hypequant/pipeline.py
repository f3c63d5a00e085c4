"""
计算流水线

社交指标按 MetricBundle 分组计算，每组输出固定的指标集合（BUNDLE_SCHEMA），
返回前校验；持仓风险流水线独立运行。

compute_social / compute_holders 调用外部数据获取函数，获取失败转换为
ComputationResult(ok=False)，不重试。
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Union

from loguru import logger

from .config import EngineConfig
from .data_validation import EventValidator, HolderValidator
from .exceptions import ContractViolationError, UpstreamFetchError
from .factors.composite import CompositeIndexBuilder
from .factors.engagement import EngagementScorer
from .factors.indicators import TechnicalIndicators
from .factors.momentum import MomentumEngine
from .holders.risk import HolderRiskEngine, Liquidity
from .metrics import StageTimer
from .models import (
    BuyActivityPoint,
    CategoryHoldings,
    Event,
    HolderSnapshot,
    MetricKind,
    RiskPoint,
    SeriesPoint,
)


class MetricBundle(Enum):
    """社交指标分组"""
    FREQUENCY = "frequency"
    SEI = "sei"
    FOMO = "fomo"
    HYPE = "hype"
    ALL = "all"


_SEI_KINDS = frozenset({
    MetricKind.SEI,
    MetricKind.SEI_VELOCITY,
    MetricKind.SEI_EMA,
    MetricKind.SEI_SPIKES,
})
_FOMO_KINDS = frozenset({
    MetricKind.FOMO_INDEX,
    MetricKind.MACD,
    MetricKind.RSI,
    MetricKind.STOCH_RSI,
})

BUNDLE_SCHEMA: Dict[MetricBundle, FrozenSet[MetricKind]] = {
    MetricBundle.FREQUENCY: frozenset({MetricKind.TWEET_FREQUENCY}),
    MetricBundle.SEI: _SEI_KINDS,
    MetricBundle.FOMO: _FOMO_KINDS,
    MetricBundle.HYPE: frozenset({MetricKind.HYPE_SCORE, MetricKind.TWEET_FREQUENCY}),
    MetricBundle.ALL: _SEI_KINDS | _FOMO_KINDS | {MetricKind.HYPE_SCORE, MetricKind.TWEET_FREQUENCY},
}


@dataclass
class SocialReport:
    """社交指标报告"""
    bundle: MetricBundle
    metrics: Dict[MetricKind, Any] = field(default_factory=dict)

    def __getitem__(self, kind: MetricKind) -> Any:
        return self.metrics[kind]

    def validate(self) -> "SocialReport":
        """检查指标集合与分组定义一致"""
        expected = BUNDLE_SCHEMA[self.bundle]
        actual = frozenset(self.metrics)
        if actual != expected:
            missing = sorted(k.value for k in expected - actual)
            extra = sorted(k.value for k in actual - expected)
            raise ContractViolationError(
                f"{self.bundle.value} 报告与定义不一致：缺少 {missing}，多余 {extra}"
            )
        return self


@dataclass
class HolderReport:
    """持仓风险报告"""
    risk: List[RiskPoint]
    risk_ema: List[SeriesPoint]
    holdings: CategoryHoldings
    holder_counts: CategoryHoldings
    buy_activity: List[BuyActivityPoint]

    @property
    def metrics(self) -> Dict[MetricKind, List[RiskPoint]]:
        return {MetricKind.SELL_OFF_RISK: self.risk}

    def __getitem__(self, kind: MetricKind) -> List[RiskPoint]:
        return self.metrics[kind]


@dataclass(frozen=True)
class ComputationResult:
    """单次计算的结果：成功时 value 有效，失败时 error 为原因"""
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "ComputationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ComputationResult":
        return cls(ok=False, error=error)


class _SocialInputs:
    """单次运行内共享的中间序列，按需计算"""

    def __init__(self, pipeline: "SocialAnalyticsPipeline", events: Sequence[Event]):
        self.pipeline = pipeline
        self.events = events

    @cached_property
    def sei(self) -> List[SeriesPoint]:
        with self.pipeline.timer.measure("sei"):
            return self.pipeline.scorer.compute_sei(self.events)

    @cached_property
    def counts(self) -> List[SeriesPoint]:
        return self.pipeline.scorer.tweet_counts(self.events)

    @cached_property
    def views(self) -> List[SeriesPoint]:
        return self.pipeline.scorer.view_totals(self.events)


class SocialAnalyticsPipeline:
    """社交指标流水线"""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.scorer = EngagementScorer(self.config.engagement)
        self.indicators = TechnicalIndicators(self.config.indicators)
        self.momentum = MomentumEngine(self.config.momentum, self.config.engagement.whale_followers)
        self.composite = CompositeIndexBuilder(self.config.composite, self.config.hype)
        self.timer = StageTimer()

        self._calculators: Dict[MetricKind, Callable[[_SocialInputs], Any]] = {
            MetricKind.SEI: lambda inputs: inputs.sei,
            MetricKind.SEI_VELOCITY: self._velocity,
            MetricKind.SEI_EMA: lambda inputs: self.indicators.ema(inputs.sei),
            MetricKind.SEI_SPIKES: lambda inputs: self.momentum.dynamic_spikes(inputs.sei),
            MetricKind.FOMO_INDEX: self._fomo,
            MetricKind.MACD: lambda inputs: self.indicators.macd(inputs.sei),
            MetricKind.RSI: lambda inputs: self.indicators.rsi(inputs.sei),
            MetricKind.STOCH_RSI: lambda inputs: self.indicators.stochastic_rsi(inputs.sei),
            MetricKind.TWEET_FREQUENCY: lambda inputs: self.composite.frequency_trend(inputs.counts),
        }

    def _velocity(self, inputs: _SocialInputs) -> List[SeriesPoint]:
        with self.timer.measure("momentum"):
            return self.momentum.oscillating_velocity(
                inputs.sei, inputs.events, self.config.engagement.interval_minutes
            )

    def _fomo(self, inputs: _SocialInputs) -> List[SeriesPoint]:
        with self.timer.measure("fomo"):
            bins = self.scorer.compute_metrics_bins(inputs.events)
            return self.composite.fomo_index(bins)

    def run(
        self,
        events: Iterable[Event],
        bundle: Union[MetricBundle, str] = MetricBundle.ALL,
        sentiment: Sequence[SeriesPoint] = (),
    ) -> SocialReport:
        """
        计算一组社交指标

        Args:
            events: 事件列表
            bundle: 指标分组
            sentiment: 情绪序列（热度评分使用，可选）

        Returns:
            通过校验的 SocialReport
        """
        try:
            bundle = MetricBundle(bundle)
        except ValueError:
            raise ContractViolationError(f"未知的指标分组：{bundle}") from None

        self.timer.reset()
        inputs = _SocialInputs(self, list(events))
        report = SocialReport(bundle=bundle)
        for kind in sorted(BUNDLE_SCHEMA[bundle], key=lambda k: k.value):
            if kind is MetricKind.HYPE_SCORE:
                report.metrics[kind] = self.composite.hype_score(inputs.counts, inputs.views, sentiment)
            else:
                report.metrics[kind] = self._calculators[kind](inputs)

        logger.info(f"{bundle.value} 指标计算完成：{len(inputs.events)} 条事件，{len(report.metrics)} 项指标")
        return report.validate()


class HolderRiskPipeline:
    """持仓风险流水线"""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.engine = HolderRiskEngine(self.config.holders)
        self.timer = StageTimer()

    def run(
        self,
        snapshots: Iterable[HolderSnapshot],
        liquidity: Liquidity,
        lp_addresses: Iterable[str] = (),
    ) -> HolderReport:
        snapshots = list(snapshots)
        lp_addresses = set(lp_addresses)

        self.timer.reset()
        with self.timer.measure(MetricKind.SELL_OFF_RISK.value):
            risk = self.engine.sell_off_risk(snapshots, liquidity, lp_addresses)

        return HolderReport(
            risk=risk,
            risk_ema=self.engine.risk_ema(risk),
            holdings=self.engine.category_holdings(snapshots, lp_addresses),
            holder_counts=self.engine.category_holder_counts(snapshots, lp_addresses),
            buy_activity=self.engine.buy_activity(snapshots, lp_addresses),
        )


def _fetch(fetch: Callable[[], Any], what: str):
    """调用外部获取函数，失败时返回 (None, 错误描述)"""
    try:
        return list(fetch() or []), None
    except UpstreamFetchError as e:
        logger.error(f"{what} 获取失败（{e.source}）：{e}")
        return None, f"{e.source}: {e}"
    except Exception as e:
        logger.error(f"{what} 获取失败：{e}")
        return None, str(e) or type(e).__name__


def compute_social(
    fetch: Callable[[], Iterable[Union[Event, Dict[str, Any]]]],
    bundle: Union[MetricBundle, str] = MetricBundle.ALL,
    pipeline: Optional[SocialAnalyticsPipeline] = None,
    sentiment: Sequence[SeriesPoint] = (),
) -> ComputationResult:
    """
    获取事件并计算社交指标

    fetch 可返回 Event 或原始记录（dict，经 EventValidator 解析）
    """
    records, error = _fetch(fetch, "事件数据")
    if error is not None:
        return ComputationResult.failure(error)

    raw = [r for r in records if not isinstance(r, Event)]
    events = [r for r in records if isinstance(r, Event)]
    if raw:
        events.extend(EventValidator().parse_events(raw))

    pipeline = pipeline or SocialAnalyticsPipeline()
    return ComputationResult.success(pipeline.run(events, bundle, sentiment))


def compute_holders(
    fetch: Callable[[], Iterable[Union[HolderSnapshot, Dict[str, Any]]]],
    liquidity: Liquidity,
    lp_addresses: Iterable[str] = (),
    pipeline: Optional[HolderRiskPipeline] = None,
) -> ComputationResult:
    """
    获取持仓快照并计算持仓风险

    fetch 可返回 HolderSnapshot 或原始记录（dict，经 HolderValidator 解析）
    """
    records, error = _fetch(fetch, "持仓数据")
    if error is not None:
        return ComputationResult.failure(error)

    raw = [r for r in records if not isinstance(r, HolderSnapshot)]
    snapshots = [r for r in records if isinstance(r, HolderSnapshot)]
    if raw:
        snapshots.extend(HolderValidator().parse_holders(raw))

    pipeline = pipeline or HolderRiskPipeline()
    return ComputationResult.success(pipeline.run(snapshots, liquidity, lp_addresses))
