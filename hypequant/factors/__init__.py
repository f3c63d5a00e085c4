"""
因子模块

社交互动评分、技术指标、动量引擎与复合指数
"""

from .engagement import EngagementScorer
from .indicators import (
    SmoothingMethod,
    TechnicalIndicators,
    ema,
    macd,
    rsi,
    sma,
    stochastic_rsi,
    time_based_ewma,
)
from .momentum import MomentumEngine, fisher_transform
from .composite import (
    CompositeIndexBuilder,
    average_views_per_tweet,
    average_views_plot,
    fomo_index,
    hype_score,
    sentiment_trend,
    tweet_frequency_trend,
)

__all__ = [
    'EngagementScorer',
    'SmoothingMethod',
    'TechnicalIndicators',
    'ema',
    'macd',
    'rsi',
    'sma',
    'stochastic_rsi',
    'time_based_ewma',
    'MomentumEngine',
    'fisher_transform',
    'CompositeIndexBuilder',
    'average_views_per_tweet',
    'average_views_plot',
    'fomo_index',
    'hype_score',
    'sentiment_trend',
    'tweet_frequency_trend',
]
