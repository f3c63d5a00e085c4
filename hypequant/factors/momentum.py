"""
动量引擎
由 SEI 序列生成有界、振荡的速度序列，以及基于速度统计量的动态峰值检测

步骤：
1. EMA(SEI, tau)
2. 稳健 z 分数：z = (value - ema) / (MAD + ε)
   互动序列是重尾分布，均值/标准差 z 分数会被少数爆款主导
3. 加速度门控：gate = max(0, v[i] - 2v[i-1] + v[i-2])
4. 大V助推：boost = λ * tanh(大V互动 / base)
5. velocity = z * gate * (1 + boost)
6. Fisher 变换
"""

import math
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from ..config import MomentumConfig
from ..data_validation import ensure_ascending
from ..models import Event, SeriesPoint, to_millis
from ..processing.resampler import bucket_events
from ..utils.numeric import finite_or_zero, median_mad, population_mean_std
from .indicators import ema_values


def fisher_transform(value: float, clip: float = 0.99) -> float:
    """
    Fisher 变换

    先将 v 压缩为 v / (|v| + 1) 并截断到 [-clip, clip]，避免无穷大
    """
    x = value / (abs(value) + 1)
    x = max(-clip, min(clip, x))
    return 0.5 * math.log((1 + x) / (1 - x))


def robust_z_scores(values: Sequence[float], baseline: Sequence[float], epsilon: float = 0.01) -> np.ndarray:
    """以 MAD 为尺度的稳健 z 分数：(values - baseline) / (MAD + ε)"""
    _, mad = median_mad(values)
    return (np.asarray(values, dtype=np.float64) - np.asarray(baseline, dtype=np.float64)) / (mad + epsilon)


def acceleration_gate(values: Sequence[float], i: int) -> float:
    """二阶差分，只保留正加速度"""
    accel = values[i] - 2 * values[i - 1] + values[i - 2]
    return max(0.0, accel)


class MomentumEngine:
    """SEI 动量引擎"""

    def __init__(self, config: Optional[MomentumConfig] = None, whale_followers: int = 10_000):
        self.config = config or MomentumConfig()
        self.whale_followers = whale_followers

    def whale_boost(self, whale_engagement: float) -> float:
        """大V助推：λ * tanh(互动 / base)"""
        return self.config.whale_lambda * math.tanh(whale_engagement / self.config.engagement_base)

    def oscillating_velocity(
        self,
        sei: Sequence[SeriesPoint],
        events: Sequence[Event],
        interval_minutes: float,
    ) -> List[SeriesPoint]:
        """
        计算振荡 SEI 速度

        Args:
            sei: SEI 序列
            events: 原始事件（用于大V加权）
            interval_minutes: 时间桶宽度，须与 SEI 的分桶一致

        Returns:
            Fisher 变换后的速度序列（从第 3 个点开始），输入少于 3 个点时返回空列表
        """
        points = ensure_ascending(sei)
        n = len(points)
        if n < 3:
            logger.debug(f"SEI 速度数据不足：{n} < 3")
            return []

        values = np.array([p.value for p in points], dtype=np.float64)
        ema = np.array(ema_values(values, self.config.tau))
        median, mad = median_mad(values)
        z = robust_z_scores(values, ema, self.config.epsilon)
        logger.debug(f"SEI 中位数={median:.4f}, MAD={mad:.4f}")

        whale_by_bucket = {
            b.start_ms: b.whale_engagement
            for b in bucket_events(events, interval_minutes, whale_followers=self.whale_followers)
        }

        result = []
        for i in range(2, n):
            gate = acceleration_gate(values, i)
            boost = self.whale_boost(whale_by_bucket.get(to_millis(points[i].time), 0.0))
            velocity = z[i] * gate * (1 + boost)
            result.append(SeriesPoint(
                time=points[i].time,
                value=finite_or_zero(fisher_transform(finite_or_zero(velocity), self.config.fisher_clip)),
            ))
        return result

    @staticmethod
    def compute_velocities(series: Sequence[SeriesPoint]) -> List[SeriesPoint]:
        """
        每步速度：Δvalue / Δ分钟

        时间差为 0 的步骤被跳过
        """
        points = ensure_ascending(series)
        velocities = []
        for prev, curr in zip(points, points[1:]):
            dt_minutes = (to_millis(curr.time) - to_millis(prev.time)) / 60_000
            if dt_minutes == 0:
                continue
            velocity = finite_or_zero((curr.value - prev.value) / dt_minutes)
            velocities.append(SeriesPoint(time=curr.time, value=velocity))
        return velocities

    def dynamic_spikes(self, series: Sequence[SeriesPoint], k: Optional[float] = None) -> List[SeriesPoint]:
        """
        动态峰值检测

        返回速度 >= μ + kσ 的点（μ、σ 为所有步速度的总体均值和标准差）
        """
        sigma_k = self.config.spike_sigma if k is None else k
        velocities = self.compute_velocities(series)
        if not velocities:
            return []

        mu, sigma = population_mean_std([v.value for v in velocities])
        cutoff = mu + sigma_k * sigma
        spikes = [v for v in velocities if v.value >= cutoff]
        logger.debug(f"动态峰值：{len(spikes)}/{len(velocities)}，阈值 {cutoff:.4f}")
        return spikes
