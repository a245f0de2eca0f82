"""
数据预处理模块
负责加载画像数据、统计技能共现
"""
from .loader import ProfileLoader, build_skill_statistics, save_jsonl
from .repository import InMemoryRepository

__all__ = [
    'ProfileLoader',
    'build_skill_statistics',
    'save_jsonl',
    'InMemoryRepository',
]
