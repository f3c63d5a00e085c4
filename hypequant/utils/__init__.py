"""
工具模块
"""

from .log import setup_logging
from .numeric import (
    finite_or_zero,
    finite_array,
    safe_div,
    median_mad,
    population_mean_std,
)

__all__ = [
    'setup_logging',
    'finite_or_zero',
    'finite_array',
    'safe_div',
    'median_mad',
    'population_mean_std',
]
