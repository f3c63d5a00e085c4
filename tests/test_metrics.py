"""
阶段计时单元测试

测试 StageTimer 的计时与统计
"""

import sys
from pathlib import Path

import pytest

# 添加项目路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from hypequant.metrics import StageTimer


class TestStageTimer:
    """测试阶段计时器"""

    def test_initial_state(self):
        """测试初始状态"""
        timer = StageTimer()
        assert timer.get_performance_stats() == {}

    def test_end_timer_records(self):
        """测试结束计时记录耗时"""
        timer = StageTimer()
        start = timer.start_timer()
        elapsed = timer.end_timer(start, "sei")

        assert elapsed >= 0
        assert timer.stage_times["sei"] == [elapsed]

    def test_measure_context(self):
        """测试上下文管理器计时"""
        timer = StageTimer()
        with timer.measure("fomo"):
            pass
        with timer.measure("fomo"):
            pass

        stats = timer.get_performance_stats()
        assert len(timer.stage_times["fomo"]) == 2
        assert stats["fomo_total"] == pytest.approx(sum(timer.stage_times["fomo"]))
        assert stats["fomo_max"] >= stats["fomo_avg"]

    def test_measure_records_on_error(self):
        """测试阶段抛出异常时仍记录耗时"""
        timer = StageTimer()
        with pytest.raises(RuntimeError):
            with timer.measure("momentum"):
                raise RuntimeError("boom")
        assert len(timer.stage_times["momentum"]) == 1

    def test_reset(self):
        """测试清空计时记录"""
        timer = StageTimer()
        with timer.measure("sei"):
            pass
        timer.reset()
        assert timer.get_performance_stats() == {}
