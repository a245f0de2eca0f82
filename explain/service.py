"""
解释生成服务
预占配额 -> 缓存查找 -> 生成 -> 写缓存 / 记成本（同一缓存键只生成一次）
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List

from explain.cache import ResponseCache, make_cache_key
from explain.generator import build_generator
from explain.prompts import (
    CAREER_GUIDANCE, EXPLANATION, SKILL_ADVICE, SYSTEM_PROMPTS,
    career_advice_prompt, match_explanation_prompt, skill_gap_prompt,
)
from explain.quota import CostTracker, QuotaGuard
from models import CostMetrics, JobProfile, LLMResponse, MatchScore, UsageStats, UserProfile

logger = logging.getLogger(__name__)


class ExplanationService:
    """带缓存和配额的解释服务"""

    def __init__(self, generator=None, cache: ResponseCache = None,
                 quota: QuotaGuard = None, costs: CostTracker = None):
        self.generator = generator or build_generator()
        self.cache = cache or ResponseCache()
        self.quota = quota or QuotaGuard()
        self.costs = costs or CostTracker()
        self._lock = threading.Lock()
        self.total_requests = 0
        # 缓存键 -> [锁, 等待者数]
        self._inflight: Dict[str, List] = {}

    def explain_match(self, user: UserProfile, job: JobProfile, match: MatchScore, tier: str = None) -> LLMResponse:
        """解释用户与岗位的匹配结果"""
        key = make_cache_key(
            EXPLANATION, user.user_id,
            job_id=job.job_id,
            score=round(match.total_score, 4),
            user=user.model_dump(mode="json"),
            job=job.model_dump(mode="json"),
        )
        prompt = match_explanation_prompt(user, job, match)
        return self._serve(user.user_id, EXPLANATION, key, prompt, tier, {"job_id": job.job_id})

    def analyze_skill_gaps(self, user: UserProfile, job: JobProfile, tier: str = None) -> LLMResponse:
        key = make_cache_key(
            SKILL_ADVICE, user.user_id,
            job_id=job.job_id,
            user=user.model_dump(mode="json"),
            job=job.model_dump(mode="json"),
        )
        prompt = skill_gap_prompt(user, job)
        return self._serve(user.user_id, SKILL_ADVICE, key, prompt, tier, {"job_id": job.job_id})

    def generate_career_advice(self, user: UserProfile, career_goals: str, tier: str = None) -> LLMResponse:
        key = make_cache_key(
            CAREER_GUIDANCE, user.user_id,
            goals=career_goals,
            user=user.model_dump(mode="json"),
        )
        prompt = career_advice_prompt(user, career_goals)
        return self._serve(user.user_id, CAREER_GUIDANCE, key, prompt, tier, {"career_goals": career_goals})

    def _serve(self, user_id: str, request_type: str, key: str, prompt: str,
               tier: str, metadata: Dict[str, Any]) -> LLMResponse:
        if tier:
            self.quota.set_tier(user_id, tier)
        self.quota.reserve(user_id, request_type)

        try:
            with self._key_lock(key):
                cached = self.cache.get(key)
                if cached is None:
                    content, input_tokens, output_tokens = self.generator.generate(
                        request_type, SYSTEM_PROMPTS[request_type], prompt
                    )
                    tokens = input_tokens + output_tokens
                    cost = self.costs.track(user_id, input_tokens, output_tokens)
                    self.cache.put(key, content, tokens, cost, metadata)
        except Exception:
            self.quota.refund(user_id, request_type)
            raise
        self._count_request()

        if cached is not None:
            # 命中缓存：已消耗配额，不重复计成本
            return LLMResponse(
                content=cached.content,
                request_type=request_type,
                tokens_used=cached.tokens_used,
                cost=cached.cost,
                cached=True,
                metadata=dict(cached.metadata),
            )

        logger.info("生成 %s: 用户 %s, tokens=%d, cost=%.4f", request_type, user_id, tokens, cost)

        return LLMResponse(
            content=content,
            request_type=request_type,
            tokens_used=tokens,
            cost=cost,
            cached=False,
            metadata=dict(metadata),
        )

    @contextmanager
    def _key_lock(self, key: str):
        """同一缓存键的请求串行执行，无人等待时释放锁对象"""
        with self._lock:
            entry = self._inflight.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._inflight[key]

    def _count_request(self):
        with self._lock:
            self.total_requests += 1

    def get_usage_stats(self, user_id: str) -> UsageStats:
        quota = self.quota.usage(user_id)
        return UsageStats(
            user_id=user_id,
            tier=quota.tier,
            current_usage=quota.current_usage,
            monthly_limit=quota.monthly_limit,
            explanations_left=quota.explanations_left,
            advice_left=quota.advice_left,
            total_cost=self.costs.user_cost(user_id),
            last_reset=quota.last_reset,
        )

    def get_cost_metrics(self) -> CostMetrics:
        costs = self.costs.snapshot()
        with self._lock:
            total_requests = self.total_requests
        return CostMetrics(
            total_cost=costs["total_cost"],
            total_tokens=costs["total_tokens"],
            total_requests=total_requests,
            cache_hits=self.cache.hits,
            cache_hit_rate=self.cache.hit_rate(),
            cache_size=len(self.cache),
            daily_costs=costs["daily_costs"],
            user_costs=costs["user_costs"],
        )
