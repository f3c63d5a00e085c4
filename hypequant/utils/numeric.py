"""
数值工具
NaN/Infinity 清洗、稳健统计量
"""

import math
from typing import Iterable, Sequence, Tuple

import numpy as np


def finite_or_zero(value: float) -> float:
    """NaN 或 ±Infinity 替换为 0"""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def finite_array(values: Iterable[float]) -> np.ndarray:
    """数组版本的 finite_or_zero"""
    arr = np.asarray(list(values), dtype=np.float64)
    return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0)


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """除法，分母为 0 或结果非有限时返回 default"""
    if denominator == 0:
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def median_mad(values: Sequence[float]) -> Tuple[float, float]:
    """
    中位数与中位数绝对偏差 (MAD)

    Args:
        values: 输入数值

    Returns:
        (median, mad)，空输入返回 (0, 0)
    """
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=np.float64)
    median = float(np.median(arr))
    mad = float(np.median(np.abs(arr - median)))
    return median, mad


def population_mean_std(values: Sequence[float]) -> Tuple[float, float]:
    """总体均值和标准差（ddof=0）"""
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(arr.mean()), float(arr.std())
