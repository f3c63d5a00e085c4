"""
持仓风险模块

地址分类、分类别余额聚合、抛售风险与买入活跃度
"""

from .risk import (
    HolderRiskEngine,
    aggregate_risk,
    balance_matrix,
    buy_activity,
    category_holder_counts,
    category_holdings,
    classify_holders,
    concentration_risk,
    risk_ema,
    sell_off_risk,
    whale_exit_risk,
)

__all__ = [
    'HolderRiskEngine',
    'aggregate_risk',
    'balance_matrix',
    'buy_activity',
    'category_holder_counts',
    'category_holdings',
    'classify_holders',
    'concentration_risk',
    'risk_ema',
    'sell_off_risk',
    'whale_exit_risk',
]
