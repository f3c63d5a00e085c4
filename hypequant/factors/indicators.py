"""
技术指标
EMA、RSI（Wilder / EMA / SMA 平滑）、MACD、随机 RSI

所有函数在入口处按时间升序排序输入，递归平滑写成带显式累加器的折叠
（itertools.accumulate），输出序列与输入共享时间标签。
"""

from enum import Enum
from itertools import accumulate
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..config import IndicatorConfig
from ..data_validation import ensure_ascending
from ..exceptions import ContractViolationError
from ..models import MACDPoint, SeriesPoint, StochRSIPoint
from ..utils.numeric import finite_or_zero


class SmoothingMethod(Enum):
    """RSI 平滑方法"""
    WILDER = "wilder"
    EMA = "ema"
    SMA = "sma"


def _check_period(name: str, period: int) -> None:
    if period is None or period <= 0:
        raise ContractViolationError(f"{name} 必须为正整数：{period}")


def ewm_fold(values: Sequence[float], alpha: float) -> List[float]:
    """
    指数加权折叠

    out[0] = values[0]
    out[i] = alpha * values[i] + (1 - alpha) * out[i-1]
    """
    if len(values) == 0:
        return []

    def step(prev: float, value: float) -> float:
        return alpha * value + (1 - alpha) * prev

    return list(accumulate(values[1:], step, initial=float(values[0])))


def ema_values(values: Sequence[float], period: int) -> List[float]:
    """原始数值的指数移动平均"""
    _check_period("period", period)
    return ewm_fold(values, 2.0 / (period + 1))


def ema(series: Sequence[SeriesPoint], period: int) -> List[SeriesPoint]:
    """
    指数移动平均 (EMA)

    alpha = 2 / (period + 1)，第一个输出等于第一个输入

    Args:
        series: 时间序列
        period: 周期

    Returns:
        EMA 序列，空输入返回空列表
    """
    points = ensure_ascending(series)
    smoothed = ema_values([p.value for p in points], period)
    return [SeriesPoint(time=p.time, value=finite_or_zero(v)) for p, v in zip(points, smoothed)]


def time_based_ewma(series: Sequence[SeriesPoint], alpha: float) -> List[SeriesPoint]:
    """给定平滑因子 alpha (0, 1] 的指数加权平均"""
    if not 0 < alpha <= 1:
        raise ContractViolationError(f"alpha 必须在 (0, 1] 内：{alpha}")
    points = ensure_ascending(series)
    smoothed = ewm_fold([p.value for p in points], alpha)
    return [SeriesPoint(time=p.time, value=finite_or_zero(v)) for p, v in zip(points, smoothed)]


def sma(series: Sequence[SeriesPoint], window: int) -> List[SeriesPoint]:
    """尾随简单移动平均（开头使用不完整窗口）"""
    _check_period("window", window)
    points = ensure_ascending(series)
    if not points:
        return []
    means = pd.Series([p.value for p in points]).rolling(window, min_periods=1).mean().values
    return [SeriesPoint(time=p.time, value=finite_or_zero(v)) for p, v in zip(points, means)]


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    """由平均涨跌幅计算 RSI，限制在 [0, 100]"""
    if avg_loss <= 0:
        # 平坦窗口取中性值 50
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return float(min(100.0, max(0.0, 100.0 - 100.0 / (1.0 + rs))))


def _smoothing_step(
    method: SmoothingMethod,
    period: int,
    gains: np.ndarray,
    losses: np.ndarray,
) -> Callable[[Tuple[float, float], int], Tuple[float, float]]:
    """返回一步平滑函数：(avg_gain, avg_loss), i -> 新状态"""
    if method is SmoothingMethod.WILDER:
        def step(state, i):
            g, l = state
            return (g * (period - 1) + gains[i]) / period, (l * (period - 1) + losses[i]) / period
    elif method is SmoothingMethod.EMA:
        alpha = 2.0 / (period + 1)

        def step(state, i):
            g, l = state
            return alpha * gains[i] + (1 - alpha) * g, alpha * losses[i] + (1 - alpha) * l
    else:
        def step(state, i):
            g, l = state
            # 滚动窗口：移出最旧的一步，加入最新的一步
            g = g + (gains[i] - gains[i - period]) / period
            l = l + (losses[i] - losses[i - period]) / period
            return max(g, 0.0), max(l, 0.0)
    return step


def rsi(
    series: Sequence[SeriesPoint],
    period: int = 14,
    method: Union[SmoothingMethod, str] = SmoothingMethod.WILDER,
) -> List[SeriesPoint]:
    """
    相对强弱指标 (RSI)

    前 period 步涨跌幅的简单均值作为初始平均值，第一个 RSI 位于索引 period，
    之后按所选方法递推。

    Args:
        series: 时间序列
        period: RSI 周期
        method: 平滑方法（wilder / ema / sma）

    Returns:
        RSI 序列，输入少于 period + 1 个点时返回空列表
    """
    _check_period("period", period)
    try:
        method = SmoothingMethod(method)
    except ValueError:
        raise ContractViolationError(f"未知的平滑方法：{method}") from None

    points = ensure_ascending(series)
    if len(points) < period + 1:
        logger.debug(f"RSI 数据不足：{len(points)} < {period + 1}")
        return []

    delta = np.diff(np.array([p.value for p in points], dtype=np.float64))
    gains = np.maximum(delta, 0.0)
    losses = np.maximum(-delta, 0.0)

    seed = (float(gains[:period].mean()), float(losses[:period].mean()))
    step = _smoothing_step(method, period, gains, losses)
    # delta[i] 对应 points[i + 1]
    states = accumulate(range(period, len(delta)), step, initial=seed)

    return [
        SeriesPoint(time=points[period + offset].time, value=_rsi_value(*state))
        for offset, state in enumerate(states)
    ]


def macd(
    series: Sequence[SeriesPoint],
    fast_period: int = 9,
    slow_period: int = 14,
    signal_period: int = 9,
) -> List[MACDPoint]:
    """
    MACD 指标

    macd = EMA(fast) - EMA(slow)，signal = EMA(macd, signal_period)，
    histogram = macd - signal

    Returns:
        MACDPoint 列表
    """
    _check_period("signal_period", signal_period)
    points = ensure_ascending(series)
    values = [p.value for p in points]

    fast = np.array(ema_values(values, fast_period))
    slow = np.array(ema_values(values, slow_period))
    if not points:
        return []

    macd_line = fast - slow
    signal_line = np.array(ema_values(list(macd_line), signal_period))
    histogram = macd_line - signal_line

    return [
        MACDPoint(
            time=p.time,
            macd=finite_or_zero(m),
            signal=finite_or_zero(s),
            histogram=finite_or_zero(h),
        )
        for p, m, s, h in zip(points, macd_line, signal_line, histogram)
    ]


def stochastic_rsi(
    series: Sequence[SeriesPoint],
    rsi_period: int = 14,
    stoch_period: int = 14,
    smooth_k: int = 3,
    smooth_d: int = 4,
) -> List[StochRSIPoint]:
    """
    随机 RSI

    在 Wilder RSI 上取最近 stoch_period 个值的最小/最大值，将当前 RSI 映射到 [0, 100]；
    窗口内最小值等于最大值时取 50。%K 和 %D 使用尾随简单平均平滑（<= 1 表示不平滑）。

    Returns:
        StochRSIPoint 列表，%D 在数据不足时为 None
    """
    _check_period("stoch_period", stoch_period)
    rsi_points = rsi(series, rsi_period, SmoothingMethod.WILDER)
    if len(rsi_points) < stoch_period:
        return []

    values = np.array([p.value for p in rsi_points], dtype=np.float64)
    times = [p.time for p in rsi_points[stoch_period - 1:]]

    raw_k = []
    for i in range(stoch_period - 1, len(values)):
        window = values[i - stoch_period + 1:i + 1]
        lo, hi = window.min(), window.max()
        raw_k.append(50.0 if hi == lo else (values[i] - lo) / (hi - lo) * 100)

    k = pd.Series(raw_k)
    if smooth_k and smooth_k > 1:
        k = k.rolling(smooth_k).mean()
    d = k.rolling(smooth_d).mean() if smooth_d and smooth_d > 1 else None

    result = []
    for i, time in enumerate(times):
        if pd.isna(k.iloc[i]):
            continue
        d_value = None
        if d is not None and not pd.isna(d.iloc[i]):
            d_value = float(min(100.0, max(0.0, d.iloc[i])))
        result.append(StochRSIPoint(time=time, k=float(min(100.0, max(0.0, k.iloc[i]))), d=d_value))
    return result


class TechnicalIndicators:
    """技术指标集合（按配置调用）"""

    def __init__(self, config: Optional[IndicatorConfig] = None):
        self.config = config or IndicatorConfig()

    def ema(self, series: Sequence[SeriesPoint], period: Optional[int] = None) -> List[SeriesPoint]:
        return ema(series, period or self.config.ema_period)

    def rsi(self, series: Sequence[SeriesPoint]) -> List[SeriesPoint]:
        return rsi(series, self.config.rsi_period, self.config.rsi_method)

    def macd(self, series: Sequence[SeriesPoint]) -> List[MACDPoint]:
        return macd(series, self.config.macd_fast, self.config.macd_slow, self.config.macd_signal)

    def stochastic_rsi(self, series: Sequence[SeriesPoint]) -> List[StochRSIPoint]:
        return stochastic_rsi(
            series,
            self.config.stoch_rsi_period,
            self.config.stoch_period,
            self.config.stoch_smooth_k,
            self.config.stoch_smooth_d,
        )
