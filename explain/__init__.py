"""
解释生成模块
负责匹配解释、技能差距分析、职业建议，以及缓存与配额
"""
from .cache import ResponseCache
from .generator import LLMExplanationGenerator, TemplateExplanationGenerator
from .maintenance import MaintenanceScheduler
from .quota import CostTracker, QuotaGuard
from .service import ExplanationService

__all__ = [
    'ResponseCache',
    'LLMExplanationGenerator',
    'TemplateExplanationGenerator',
    'MaintenanceScheduler',
    'CostTracker',
    'QuotaGuard',
    'ExplanationService',
]
