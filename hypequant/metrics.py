"""
计算阶段计时
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List

import numpy as np
from loguru import logger


class StageTimer:
    """阶段计时器"""

    def __init__(self):
        self.stage_times: Dict[str, List[float]] = defaultdict(list)

    def start_timer(self) -> float:
        """启动计时器"""
        return time.time()

    def end_timer(self, start_time: float, stage: str) -> float:
        """
        结束计时器并记录

        Args:
            start_time: 开始时间
            stage: 阶段名称（如 sei, momentum, fomo）

        Returns:
            耗时（秒）
        """
        elapsed = time.time() - start_time
        self.stage_times[stage].append(elapsed)
        logger.debug(f"阶段 {stage} 耗时 {elapsed * 1000:.2f} ms")
        return elapsed

    @contextmanager
    def measure(self, stage: str):
        start = self.start_timer()
        try:
            yield
        finally:
            self.end_timer(start, stage)

    def reset(self):
        """清空已记录的耗时，流水线每次运行开始时调用"""
        self.stage_times.clear()

    def get_performance_stats(self) -> Dict[str, float]:
        """
        获取性能统计

        Returns:
            {"<阶段>_avg", "<阶段>_max", "<阶段>_total"}
        """
        stats = {}
        for stage, times in self.stage_times.items():
            stats[f"{stage}_avg"] = float(np.mean(times))
            stats[f"{stage}_max"] = float(np.max(times))
            stats[f"{stage}_total"] = float(np.sum(times))
        return stats
