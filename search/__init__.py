"""
搜索匹配模块
负责基础评分、A/B 分组和混合匹配协调
"""
from .matcher import HybridMatcher
from .scorer import BaselineScorer

__all__ = ['HybridMatcher', 'BaselineScorer']
