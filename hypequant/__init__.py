"""
HypeQuant - 代币社交热度与持仓风险分析引擎

核心模块：
- models: 数据模型（事件、时间序列点、持仓快照、风险点）
- data_validation: 输入验证与清洗
- processing: 时间桶重采样
- factors: 互动评分、技术指标、动量引擎、复合指数
- holders: 持仓分类与抛售风险
- pipeline: 指标分组计算流水线
- metrics: 阶段计时
"""

__version__ = "1.0.0"

__all__ = [
    "models",
    "config",
    "exceptions",
    "data_validation",
    "processing",
    "factors",
    "holders",
    "pipeline",
    "metrics",
    "utils",
]
