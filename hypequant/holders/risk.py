"""
持仓风险引擎
按峰值余额对地址分类（巨鲸/散户/LP），按时间桶聚合余额，并计算抛售风险评分

每个时间桶：
1. 集中度风险 = 1 - H / ln(N)，H = -Σ p_i ln(p_i)
2. 协同抛售比例：相对 sell_window 个桶之前余额下跌 ≥ 5% 的持有人占比
3. 流动性风险 = min(1, 巨鲸持仓 / 流动性)
4. 评分 = w1 * 集中度 + w2 * 协同抛售标志 + w3 * 流动性风险

LP 地址不计入持有人数量；某个桶内没有快照的地址余额按 0 计。
"""

import math
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..config import HolderRiskConfig
from ..exceptions import ContractViolationError
from ..factors.indicators import ema
from ..models import (
    BuyActivityPoint,
    CategoryHoldings,
    HolderClass,
    HolderSnapshot,
    RiskPoint,
    SeriesPoint,
    WhaleExitRiskPoint,
    from_millis,
    to_millis,
)
from ..processing.resampler import floor_millis, interval_ms
from ..utils.numeric import finite_or_zero, safe_div

Liquidity = Union[float, Callable[[datetime], float]]


def classify_holders(
    snapshots: Iterable[HolderSnapshot],
    lp_addresses: Iterable[str] = (),
    whale_threshold: float = 10_000_000,
) -> Dict[str, HolderClass]:
    """
    按峰值余额对地址分类

    分类在整个运行期间只计算一次：余额之后跌破阈值的巨鲸仍是巨鲸。
    LP 地址优先，不参与巨鲸/散户划分。

    Returns:
        {address: HolderClass}，只包含数据中出现过的地址
    """
    lps = set(lp_addresses)
    peaks: Dict[str, float] = {}
    for s in snapshots:
        peaks[s.address] = max(peaks.get(s.address, s.amount), s.amount)

    classes = {}
    for address, peak in peaks.items():
        if address in lps:
            classes[address] = HolderClass.LP
        elif peak >= whale_threshold:
            classes[address] = HolderClass.WHALE
        else:
            classes[address] = HolderClass.RETAIL
    return classes


def _pivot(snapshots: Sequence[HolderSnapshot], interval_minutes: float) -> pd.DataFrame:
    """(桶, 地址) 透视表，取桶内最后一个余额，没有快照的位置为 NaN"""
    width = interval_ms(interval_minutes)
    if not snapshots:
        return pd.DataFrame(dtype=np.float64)

    frame = pd.DataFrame({
        "ts": [to_millis(s.timestamp) for s in snapshots],
        "address": [s.address for s in snapshots],
        "amount": [float(s.amount) for s in snapshots],
    })
    frame["bucket"] = [floor_millis(ts, width) for ts in frame["ts"]]
    frame = frame.sort_values("ts", kind="mergesort")

    pivot = frame.groupby(["bucket", "address"], sort=True)["amount"].last().unstack("address")
    return pivot.sort_index()


def balance_matrix(snapshots: Sequence[HolderSnapshot], interval_minutes: float = 5) -> pd.DataFrame:
    """
    余额矩阵

    行为时间桶起点（毫秒，升序），列为地址，值为该桶内最后一个余额；
    桶内没有快照的地址余额为 0。
    """
    return _pivot(list(snapshots), interval_minutes).fillna(0.0)


def _without_lps(snapshots: Iterable[HolderSnapshot], lp_addresses: Iterable[str]) -> List[HolderSnapshot]:
    lps = set(lp_addresses)
    return [s for s in snapshots if s.address not in lps]


def _lagged(values: np.ndarray, window: int) -> Tuple[np.ndarray, np.ndarray]:
    """返回 window 个桶之前的余额（之前不足 window 个桶的行为 0）及有效行掩码"""
    if window <= 0:
        raise ContractViolationError(f"sell_window 必须为正整数：{window}")
    prev = np.zeros_like(values)
    if window < len(values):
        prev[window:] = values[:-window]
    has_prev = np.arange(len(values)) >= window
    return prev, has_prev


def concentration_risk(values: np.ndarray, n_holders: int) -> np.ndarray:
    """
    归一化集中度风险 1 - H / ln(N)，限制在 [0, 1]

    N <= 1 时为 0
    """
    rows = len(values)
    if n_holders <= 1 or rows == 0:
        return np.zeros(rows)

    totals = values.sum(axis=1, keepdims=True)
    shares = np.divide(values, totals, out=np.zeros_like(values), where=totals > 0)
    logs = np.log(shares, out=np.zeros_like(shares), where=shares > 0)
    entropy = -(shares * logs).sum(axis=1)
    return np.clip(1.0 - entropy / math.log(n_holders), 0.0, 1.0)


def _liquidity_at(liquidity: Liquidity, time: datetime) -> float:
    value = liquidity(time) if callable(liquidity) else liquidity
    return finite_or_zero(value)


def _liquidity_risk(whale_holdings: float, liquidity: float) -> float:
    if liquidity <= 0:
        return 0.0
    return min(whale_holdings / liquidity, 1.0)


def _sell_components(values: np.ndarray, config: HolderRiskConfig):
    """集中度、协同抛售比例、巨鲸持仓（逐行）"""
    n_holders = values.shape[1]
    concentration = concentration_risk(values, n_holders)

    prev, _ = _lagged(values, config.sell_window)
    drops = np.divide(prev - values, prev, out=np.zeros_like(values), where=prev > 0)
    sellers = (drops >= config.drop_threshold).sum(axis=1)
    sell_ratio = sellers / n_holders

    whale_holdings = np.where(values > config.whale_threshold, values, 0.0).sum(axis=1)
    return concentration, sell_ratio, whale_holdings


def sell_off_risk(
    snapshots: Iterable[HolderSnapshot],
    liquidity: Liquidity,
    lp_addresses: Iterable[str] = (),
    config: Optional[HolderRiskConfig] = None,
) -> List[RiskPoint]:
    """
    抛售风险评分 (SRS)

    Args:
        snapshots: 持仓快照
        liquidity: 可用流动性（常数，或 time -> 流动性 的函数）
        lp_addresses: LP 地址（不计入持有人）
        config: 持仓风险配置

    Returns:
        按时间升序排列的 RiskPoint 列表，没有非 LP 持有人时返回空列表
    """
    config = config or HolderRiskConfig()
    matrix = balance_matrix(_without_lps(snapshots, lp_addresses), config.interval_minutes)
    if matrix.empty:
        return []

    values = matrix.to_numpy(dtype=np.float64)
    concentration, sell_ratio, whale_holdings = _sell_components(values, config)
    w1, w2, w3 = config.weights

    points = []
    for i, key in enumerate(matrix.index):
        time = from_millis(int(key))
        flag = int(sell_ratio[i] >= config.coordinated_sell_threshold)
        liq_risk = _liquidity_risk(whale_holdings[i], _liquidity_at(liquidity, time))
        score = w1 * concentration[i] + w2 * flag + w3 * liq_risk
        points.append(RiskPoint(
            time=time,
            entropy=finite_or_zero(concentration[i]),
            coordinated_sell_ratio=finite_or_zero(sell_ratio[i]),
            coordinated_sell_flag=flag,
            liquidity_risk=finite_or_zero(liq_risk),
            score=finite_or_zero(score),
        ))

    logger.info(f"抛售风险计算完成：{matrix.shape[1]} 个持有人，{len(points)} 个时间桶")
    return points


def whale_exit_risk(
    snapshots: Iterable[HolderSnapshot],
    liquidity: Liquidity,
    lp_addresses: Iterable[str] = (),
    config: Optional[HolderRiskConfig] = None,
) -> List[WhaleExitRiskPoint]:
    """
    巨鲸退出风险

    在抛售风险的基础上加入巨鲸/散户资金流：
        散户流入 = 余额 <= retail_threshold 的地址的余额变化之和
        巨鲸流动 = 余额 > whale_threshold 的地址的余额变化之和
        可持续性 = clamp((散户流入 - |巨鲸流动|) / 散户流入, 0, 1)
        巨鲸/散户比 = |巨鲸流动| / 散户流入（散户流入为 0 时视为无穷大，输出为 0）
    评分 = w1 / max(集中度, 0.001) + w2 * 协同抛售标志 + w3 * 流动性风险 + w4 * 可持续性标志
    """
    config = config or HolderRiskConfig()
    matrix = balance_matrix(_without_lps(snapshots, lp_addresses), config.interval_minutes)
    if matrix.empty:
        return []

    values = matrix.to_numpy(dtype=np.float64)
    concentration, sell_ratio, whale_holdings = _sell_components(values, config)

    prev, has_prev = _lagged(values, config.sell_window)
    delta = np.where(has_prev[:, None], values - prev, 0.0)
    whale_flow = np.where(values > config.whale_threshold, delta, 0.0).sum(axis=1)
    retail_flow = np.where(values <= config.retail_threshold, delta, 0.0).sum(axis=1)

    w1, w2, w3, w4 = config.exit_weights
    points = []
    for i, key in enumerate(matrix.index):
        time = from_millis(int(key))
        flag = int(sell_ratio[i] >= config.coordinated_sell_threshold)
        liq_risk = _liquidity_risk(whale_holdings[i], _liquidity_at(liquidity, time))

        retail, whale = retail_flow[i], abs(whale_flow[i])
        sustainability = min(max(safe_div(retail - whale, retail), 0.0), 1.0) if retail > 0 else 0.0
        ratio = whale / retail if retail != 0 else math.inf
        sustainability_flag = int(ratio > config.sustainability_threshold)

        score = (
            w1 * (1.0 / max(concentration[i], 0.001))
            + w2 * flag
            + w3 * liq_risk
            + w4 * sustainability_flag
        )
        points.append(WhaleExitRiskPoint(
            time=time,
            entropy=finite_or_zero(concentration[i]),
            coordinated_sell_ratio=finite_or_zero(sell_ratio[i]),
            coordinated_sell_flag=flag,
            liquidity_risk=finite_or_zero(liq_risk),
            score=finite_or_zero(score),
            whale_retail_ratio=finite_or_zero(ratio),
            sustainability_score=finite_or_zero(sustainability),
        ))
    return points


def buy_activity(
    snapshots: Iterable[HolderSnapshot],
    lp_addresses: Iterable[str] = (),
    config: Optional[HolderRiskConfig] = None,
    window: Optional[int] = None,
) -> List[BuyActivityPoint]:
    """
    买入活跃度

    余额增加超过 buy_delta_threshold 记为一次买入；买入后余额不超过
    small_wallet_threshold 的计入小钱包增长和散户进场，不低于 whale_threshold
    的计入巨鲸进场；余额减少按减少前的余额计入散户或巨鲸离场。

    Args:
        snapshots: 持仓快照
        lp_addresses: LP 地址（排除）
        config: 持仓风险配置
        window: 比较的桶间隔（默认 sell_window）；之前不足 window 个桶时上一余额按 0 计

    Returns:
        BuyActivityPoint 列表
    """
    config = config or HolderRiskConfig()
    matrix = balance_matrix(_without_lps(snapshots, lp_addresses), config.interval_minutes)
    if matrix.empty:
        return []

    values = matrix.to_numpy(dtype=np.float64)
    prev, _ = _lagged(values, window or config.sell_window)
    delta = values - prev

    buys = delta > config.buy_delta_threshold
    small = buys & (values <= config.small_wallet_threshold)
    whale_in = buys & ~small & (values >= config.whale_threshold)
    exits = delta < 0
    retail_out = exits & (prev <= config.small_wallet_threshold)
    whale_out = exits & ~retail_out & (prev >= config.whale_threshold)

    unique_buyers = buys.sum(axis=1)
    net_growth = np.where(buys, delta, 0.0).sum(axis=1)
    small_growth = np.where(small, delta, 0.0).sum(axis=1)

    w1, w2, w3 = config.buy_weights
    points = []
    for i, key in enumerate(matrix.index):
        diversity = safe_div(small_growth[i], net_growth[i]) if net_growth[i] > 0 else 0.0
        buy_score = w1 * unique_buyers[i] + w2 * net_growth[i] + w3 * diversity
        points.append(BuyActivityPoint(
            time=from_millis(int(key)),
            unique_buyers=int(unique_buyers[i]),
            net_growth=finite_or_zero(net_growth[i]),
            diversity_score=finite_or_zero(diversity),
            buy_score=finite_or_zero(buy_score),
            retail_churn_ratio=safe_div(float(retail_out[i].sum()), float(small[i].sum())),
            whale_churn_ratio=safe_div(float(whale_out[i].sum()), float(whale_in[i].sum())),
        ))
    return points


def _by_class(
    snapshots: Sequence[HolderSnapshot],
    lp_addresses: Iterable[str],
    config: HolderRiskConfig,
    reducer: Callable[[pd.DataFrame], pd.Series],
) -> CategoryHoldings:
    pivot = _pivot(snapshots, config.interval_minutes)
    result = CategoryHoldings()
    if pivot.empty:
        return result

    classes = classify_holders(snapshots, lp_addresses, config.whale_threshold)
    targets = {
        HolderClass.WHALE: result.whales,
        HolderClass.RETAIL: result.retail,
        HolderClass.LP: result.lps,
    }
    for holder_class, target in targets.items():
        columns = [address for address in pivot.columns if classes.get(address) is holder_class]
        totals = reducer(pivot[columns])
        for key, value in totals.items():
            target[from_millis(int(key))] = value
    return result


def category_holdings(
    snapshots: Iterable[HolderSnapshot],
    lp_addresses: Iterable[str] = (),
    config: Optional[HolderRiskConfig] = None,
) -> CategoryHoldings:
    """每个时间桶内各类别的余额总和（只统计桶内有快照的地址）"""
    return _by_class(
        list(snapshots),
        lp_addresses,
        config or HolderRiskConfig(),
        lambda frame: frame.sum(axis=1).astype(np.float64),
    )


def category_holder_counts(
    snapshots: Iterable[HolderSnapshot],
    lp_addresses: Iterable[str] = (),
    config: Optional[HolderRiskConfig] = None,
) -> CategoryHoldings:
    """每个时间桶内各类别的活跃地址数"""
    return _by_class(
        list(snapshots),
        lp_addresses,
        config or HolderRiskConfig(),
        lambda frame: frame.notna().sum(axis=1).astype(int),
    )


def risk_ema(points: Sequence[RiskPoint], period: int = 14) -> List[SeriesPoint]:
    """风险评分的 EMA"""
    return ema([SeriesPoint(time=p.time, value=p.score) for p in points], period)


def aggregate_risk(
    points: Sequence[RiskPoint],
    interval_minutes: float = 5,
    coordinated_sell_threshold: float = 0.3,
) -> List[RiskPoint]:
    """
    将风险序列按更粗的时间桶取均值

    协同抛售标志由平均后的比例重新判定
    """
    width = interval_ms(interval_minutes)
    if not points:
        return []

    frame = pd.DataFrame({
        "bucket": [floor_millis(to_millis(p.time), width) for p in points],
        "entropy": [p.entropy for p in points],
        "coordinated_sell_ratio": [p.coordinated_sell_ratio for p in points],
        "liquidity_risk": [p.liquidity_risk for p in points],
        "score": [p.score for p in points],
    })
    means = frame.groupby("bucket", sort=True).mean()

    return [
        RiskPoint(
            time=from_millis(int(key)),
            entropy=finite_or_zero(row["entropy"]),
            coordinated_sell_ratio=finite_or_zero(row["coordinated_sell_ratio"]),
            coordinated_sell_flag=int(row["coordinated_sell_ratio"] >= coordinated_sell_threshold),
            liquidity_risk=finite_or_zero(row["liquidity_risk"]),
            score=finite_or_zero(row["score"]),
        )
        for key, row in means.iterrows()
    ]


class HolderRiskEngine:
    """持仓风险引擎（按配置调用）"""

    def __init__(self, config: Optional[HolderRiskConfig] = None):
        self.config = config or HolderRiskConfig()

    def classify(self, snapshots: Iterable[HolderSnapshot], lp_addresses: Iterable[str] = ()) -> Dict[str, HolderClass]:
        return classify_holders(snapshots, lp_addresses, self.config.whale_threshold)

    def balance_matrix(self, snapshots: Sequence[HolderSnapshot]) -> pd.DataFrame:
        return balance_matrix(snapshots, self.config.interval_minutes)

    def sell_off_risk(
        self,
        snapshots: Iterable[HolderSnapshot],
        liquidity: Liquidity,
        lp_addresses: Iterable[str] = (),
    ) -> List[RiskPoint]:
        return sell_off_risk(snapshots, liquidity, lp_addresses, self.config)

    def whale_exit_risk(
        self,
        snapshots: Iterable[HolderSnapshot],
        liquidity: Liquidity,
        lp_addresses: Iterable[str] = (),
    ) -> List[WhaleExitRiskPoint]:
        return whale_exit_risk(snapshots, liquidity, lp_addresses, self.config)

    def buy_activity(self, snapshots: Iterable[HolderSnapshot], lp_addresses: Iterable[str] = ()) -> List[BuyActivityPoint]:
        return buy_activity(snapshots, lp_addresses, self.config)

    def category_holdings(self, snapshots: Iterable[HolderSnapshot], lp_addresses: Iterable[str] = ()) -> CategoryHoldings:
        return category_holdings(snapshots, lp_addresses, self.config)

    def category_holder_counts(self, snapshots: Iterable[HolderSnapshot], lp_addresses: Iterable[str] = ()) -> CategoryHoldings:
        return category_holder_counts(snapshots, lp_addresses, self.config)

    def risk_ema(self, points: Sequence[RiskPoint]) -> List[SeriesPoint]:
        return risk_ema(points, self.config.ema_period)

    def aggregate_risk(self, points: Sequence[RiskPoint], interval_minutes: Optional[float] = None) -> List[RiskPoint]:
        return aggregate_risk(
            points,
            interval_minutes or self.config.interval_minutes,
            self.config.coordinated_sell_threshold,
        )
