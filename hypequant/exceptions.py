"""
异常定义

数值边界情况（空窗口、除零、NaN）不抛异常，而是降级处理；
异常只用于调用方违反约定或上游数据获取失败。
"""


class HypeQuantError(Exception):
    """HypeQuant 基础异常"""


class ContractViolationError(HypeQuantError, ValueError):
    """调用方违反函数约定（数组长度不一致、周期非正等）"""


class UpstreamFetchError(HypeQuantError):
    """外部数据源获取失败"""

    def __init__(self, message: str, source: str = "unknown"):
        super().__init__(message)
        self.source = source
