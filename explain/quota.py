"""
解释请求配额与成本统计
"""
import logging
import threading
from datetime import date, timedelta
from typing import Callable, Dict

from config import ExplanationConfig
from exceptions import QuotaExceededError, TierRestrictedError
from explain.prompts import EXPLANATION
from models import UserQuota

logger = logging.getLogger(__name__)

UNLIMITED = -1


def _quota_field(request_type: str) -> str:
    # 技能建议和职业规划共用 advice 额度
    return "explanations" if request_type == EXPLANATION else "advice"


class QuotaGuard:
    """按套餐限制每月解释次数"""

    def __init__(self, tier_limits: Dict[str, Dict[str, int]] = None,
                 clock: Callable[[], date] = date.today):
        self.tier_limits = tier_limits or ExplanationConfig.TIER_LIMITS
        self.clock = clock
        self._lock = threading.Lock()
        self._quotas: Dict[str, UserQuota] = {}

    def _new_quota(self, user_id: str, tier: str) -> UserQuota:
        quota = UserQuota(user_id=user_id, tier=tier, last_reset=self.clock())
        self._sync(quota)
        return quota

    def _sync(self, quota: UserQuota):
        """剩余额度由本月用量推出，换套餐不会补满"""
        limits = self.tier_limits[quota.tier]
        quota.monthly_limit = limits["explanations"]
        for field in ("explanations", "advice"):
            limit = limits[field]
            used = getattr(quota, f"{field}_used")
            setattr(quota, f"{field}_left", UNLIMITED if limit == UNLIMITED else max(limit - used, 0))

    def _get(self, user_id: str) -> UserQuota:
        quota = self._quotas.get(user_id)
        if quota is None:
            quota = self._new_quota(user_id, "free")
            self._quotas[user_id] = quota
        today = self.clock()
        if (today.year, today.month) != (quota.last_reset.year, quota.last_reset.month):
            self._reset(quota, today)
        return quota

    def _reset(self, quota: UserQuota, today: date):
        quota.current_usage = 0
        quota.explanations_used = 0
        quota.advice_used = 0
        quota.last_reset = today
        self._sync(quota)
        logger.info("用户 %s 月度配额已重置", quota.user_id)

    def set_tier(self, user_id: str, tier: str):
        if tier not in self.tier_limits:
            raise ValueError(f"未知套餐: {tier}")
        with self._lock:
            quota = self._get(user_id)
            if quota.tier == tier:
                return
            quota.tier = tier
            self._sync(quota)

    def _check(self, quota: UserQuota, request_type: str):
        field = _quota_field(request_type)
        limit = self.tier_limits[quota.tier][field]
        if limit == 0:
            raise TierRestrictedError(quota.user_id, quota.tier, request_type)
        left = getattr(quota, f"{field}_left")
        if left != UNLIMITED and left <= 0:
            raise QuotaExceededError(quota.user_id, request_type, limit)

    def _add_usage(self, quota: UserQuota, request_type: str, delta: int):
        attr = f"{_quota_field(request_type)}_used"
        setattr(quota, attr, max(getattr(quota, attr) + delta, 0))
        quota.current_usage = max(quota.current_usage + delta, 0)
        self._sync(quota)

    def check(self, user_id: str, request_type: str):
        """
        校验配额（不扣减）

        Raises:
            TierRestrictedError: 套餐不包含该请求类型
            QuotaExceededError: 本月额度已用完
        """
        with self._lock:
            self._check(self._get(user_id), request_type)

    def reserve(self, user_id: str, request_type: str):
        """在同一临界区内校验并扣减一次额度，失败时不扣减"""
        with self._lock:
            quota = self._get(user_id)
            self._check(quota, request_type)
            self._add_usage(quota, request_type, 1)

    def refund(self, user_id: str, request_type: str):
        """退还 reserve 扣减的额度（生成失败时使用）"""
        with self._lock:
            self._add_usage(self._get(user_id), request_type, -1)

    def consume(self, user_id: str, request_type: str):
        with self._lock:
            self._add_usage(self._get(user_id), request_type, 1)

    def usage(self, user_id: str) -> UserQuota:
        with self._lock:
            return self._get(user_id).model_copy()


class CostTracker:
    """按天、按用户累计 token 成本"""

    def __init__(self, cost_per_input_token: float = ExplanationConfig.COST_PER_INPUT_TOKEN,
                 cost_per_output_token: float = ExplanationConfig.COST_PER_OUTPUT_TOKEN,
                 retention_days: int = ExplanationConfig.COST_RETENTION_DAYS,
                 clock: Callable[[], date] = date.today):
        self.cost_per_input_token = cost_per_input_token
        self.cost_per_output_token = cost_per_output_token
        self.retention_days = retention_days
        self.clock = clock
        self._lock = threading.Lock()
        self.total_cost = 0.0
        self.total_tokens = 0
        self.daily_costs: Dict[str, float] = {}
        self.user_costs: Dict[str, float] = {}

    def cost_of(self, input_tokens: int, output_tokens: int) -> float:
        return input_tokens * self.cost_per_input_token + output_tokens * self.cost_per_output_token

    def track(self, user_id: str, input_tokens: int, output_tokens: int) -> float:
        cost = self.cost_of(input_tokens, output_tokens)
        day = self.clock().isoformat()
        with self._lock:
            self.total_cost += cost
            self.total_tokens += input_tokens + output_tokens
            self.daily_costs[day] = self.daily_costs.get(day, 0.0) + cost
            self.user_costs[user_id] = self.user_costs.get(user_id, 0.0) + cost
        return cost

    def rollover(self) -> int:
        """丢弃保留期之前的每日成本，返回丢弃的天数"""
        cutoff = (self.clock() - timedelta(days=self.retention_days)).isoformat()
        with self._lock:
            stale = [day for day in self.daily_costs if day < cutoff]
            for day in stale:
                del self.daily_costs[day]
        return len(stale)

    def user_cost(self, user_id: str) -> float:
        with self._lock:
            return self.user_costs.get(user_id, 0.0)

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "total_cost": self.total_cost,
                "total_tokens": self.total_tokens,
                "daily_costs": dict(self.daily_costs),
                "user_costs": dict(self.user_costs),
            }
