import threading
import time
from datetime import date, datetime, timedelta

import pytest

from exceptions import QuotaExceededError, TierRestrictedError
from explain.cache import ResponseCache, make_cache_key
from explain.generator import TemplateExplanationGenerator, build_generator
from explain.maintenance import MaintenanceScheduler
from explain.quota import CostTracker, QuotaGuard
from explain.service import ExplanationService
from search.scorer import BaselineScorer
from tests.helpers import make_job, make_user


class Clock:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


@pytest.fixture
def service():
    return ExplanationService(generator=TemplateExplanationGenerator())


def explain(service, user, job, tier=None):
    return service.explain_match(user, job, BaselineScorer().calculate_score(user, job), tier=tier)


def test_cache_key_is_canonical():
    a = make_cache_key("explanation", "u1", job_id="j1", score=0.5)
    b = make_cache_key("explanation", "u1", score=0.5, job_id="j1")
    assert a == b
    assert a != make_cache_key("explanation", "u2", job_id="j1", score=0.5)


def test_build_generator_without_key_uses_templates():
    assert isinstance(build_generator(api_key=""), TemplateExplanationGenerator)


def test_second_request_is_cached_and_not_recharged(service, user, job):
    first = explain(service, user, job)
    cost_after_first = service.get_cost_metrics().total_cost
    second = explain(service, user, job)

    assert first.cached is False
    assert second.cached is True
    assert second.content == first.content
    metrics = service.get_cost_metrics()
    assert metrics.total_cost == pytest.approx(cost_after_first)
    assert metrics.cache_hits == 1
    assert metrics.cache_hit_rate == pytest.approx(0.5)
    assert metrics.total_requests == 2
    assert service.get_usage_stats(user.user_id).explanations_left == 8


def test_free_tier_explanation_quota(service, user):
    for i in range(10):
        explain(service, user, make_job(f"j{i}"))
    with pytest.raises(QuotaExceededError):
        explain(service, user, make_job("j99"))


def test_free_tier_has_no_advice(service, user, job):
    with pytest.raises(TierRestrictedError):
        service.analyze_skill_gaps(user, job)
    with pytest.raises(TierRestrictedError):
        service.generate_career_advice(user, "成为数据工程师")


def test_pro_tier_is_unlimited(service, user, job):
    for i in range(15):
        explain(service, user, make_job(f"j{i}"), tier="pro")
    advice = service.generate_career_advice(user, "成为数据工程师", tier="pro")
    assert advice.request_type == "career_guidance"
    stats = service.get_usage_stats(user.user_id)
    assert stats.tier == "pro"
    assert stats.explanations_left == -1
    assert stats.current_usage == 16
    assert stats.total_cost > 0


def test_quota_resets_on_new_month():
    clock = Clock(date(2024, 1, 31))
    quota = QuotaGuard(clock=clock)
    for _ in range(10):
        quota.check("u1", "explanation")
        quota.consume("u1", "explanation")
    with pytest.raises(QuotaExceededError):
        quota.check("u1", "explanation")

    clock.value = date(2024, 2, 1)
    quota.check("u1", "explanation")
    usage = quota.usage("u1")
    assert usage.explanations_left == 10
    assert usage.current_usage == 0


def test_same_month_next_year_still_resets():
    clock = Clock(date(2024, 3, 5))
    quota = QuotaGuard(clock=clock)
    quota.consume("u1", "explanation")
    clock.value = date(2025, 3, 5)
    assert quota.usage("u1").current_usage == 0


def test_unknown_tier_rejected():
    with pytest.raises(ValueError):
        QuotaGuard().set_tier("u1", "platinum")


def test_cache_ttl_and_sweep():
    clock = Clock(datetime(2024, 1, 1, 12, 0))
    cache = ResponseCache(ttl_hours=1, clock=clock)
    cache.put("k", "内容", tokens_used=3, cost=0.1)
    assert cache.get("k").content == "内容"

    clock.value += timedelta(hours=2)
    assert cache.get("k") is None
    assert len(cache) == 1
    assert cache.sweep_expired() == 1
    assert len(cache) == 0


def test_cache_evicts_oldest_created():
    clock = Clock(datetime(2024, 1, 1))
    cache = ResponseCache(max_size=2, clock=clock)
    for key in ("a", "b", "c"):
        cache.put(key, key)
        clock.value += timedelta(minutes=1)

    assert cache.get("a") is None
    assert cache.get("b").content == "b"
    assert cache.get("c").content == "c"


def test_cost_tracker_rollover():
    clock = Clock(date(2024, 1, 1))
    costs = CostTracker(cost_per_input_token=0.001, cost_per_output_token=0.002, retention_days=30, clock=clock)
    assert costs.track("u1", 10, 5) == pytest.approx(0.02)

    clock.value = date(2024, 3, 1)
    costs.track("u1", 1, 1)
    assert costs.rollover() == 1
    snapshot = costs.snapshot()
    assert list(snapshot["daily_costs"]) == ["2024-03-01"]
    assert snapshot["user_costs"]["u1"] == pytest.approx(0.023)


def test_maintenance_run_once_and_thread(service):
    clock = Clock(datetime(2024, 1, 1))
    service.cache = ResponseCache(ttl_hours=1, clock=clock)
    service.cache.put("old", "x")
    clock.value += timedelta(hours=3)

    scheduler = MaintenanceScheduler(service, sweep_interval=60)
    assert scheduler.run_once(rollover=True) == (1, 0)

    scheduler.start()
    assert scheduler.running
    assert {job["id"] for job in scheduler.get_status()} == {"cache_sweep", "cost_rollover"}
    scheduler.stop()
    assert not scheduler.running
    assert scheduler.get_status() == []


def test_enterprise_skill_gap_analysis(service):
    user = make_user(skills=(("python", 4),))
    job = make_job(skills=(("python", 3), ("spark", 2)))
    response = service.analyze_skill_gaps(user, job, tier="enterprise")
    assert response.request_type == "skill_advice"
    assert response.tokens_used > 0


class SlowGenerator(TemplateExplanationGenerator):
    def __init__(self, delay=0.2, fail=False):
        super().__init__()
        self.delay = delay
        self.fail = fail
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, request_type, system_prompt, prompt):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("生成失败")
        return super().generate(request_type, system_prompt, prompt)


def run_in_threads(target, args_list):
    results, errors = [], []

    def worker(*args):
        try:
            results.append(target(*args))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    return results, errors


def test_concurrent_requests_cannot_exceed_free_quota(user):
    service = ExplanationService(generator=SlowGenerator())
    for _ in range(9):
        service.quota.reserve(user.user_id, "explanation")

    results, errors = run_in_threads(
        lambda job: explain(service, user, job),
        [(make_job(f"new{i}"),) for i in range(5)],
    )

    assert len(results) == 1
    assert len(errors) == 4
    assert all(isinstance(e, QuotaExceededError) for e in errors)
    stats = service.get_usage_stats(user.user_id)
    assert stats.explanations_left == 0
    assert stats.current_usage == 10


def test_identical_concurrent_misses_generate_once(user, job):
    generator = SlowGenerator()
    service = ExplanationService(generator=generator)

    results, errors = run_in_threads(lambda: explain(service, user, job, tier="pro"), [()] * 3)

    assert errors == []
    assert generator.calls == 1
    assert sorted(r.cached for r in results) == [False, True, True]
    fresh = next(r for r in results if not r.cached)
    assert service.get_cost_metrics().total_cost == pytest.approx(fresh.cost)
    assert service.get_usage_stats(user.user_id).current_usage == 3


def test_failed_generation_refunds_quota(user, job):
    service = ExplanationService(generator=SlowGenerator(delay=0.0, fail=True))
    with pytest.raises(RuntimeError):
        explain(service, user, job)

    stats = service.get_usage_stats(user.user_id)
    assert stats.explanations_left == 10
    assert stats.current_usage == 0
    assert service.get_cost_metrics().total_requests == 0


def test_tier_switch_keeps_monthly_usage():
    quota = QuotaGuard(clock=Clock(date(2024, 5, 10)))
    quota.set_tier("u1", "pro")
    for _ in range(7):
        quota.reserve("u1", "explanation")

    quota.set_tier("u1", "free")
    usage = quota.usage("u1")
    assert usage.explanations_left == 3
    assert usage.current_usage == 7

    for _ in range(3):
        quota.reserve("u1", "explanation")
    with pytest.raises(QuotaExceededError):
        quota.reserve("u1", "explanation")

    quota.set_tier("u1", "pro")
    assert quota.usage("u1").explanations_left == -1
