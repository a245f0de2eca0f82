"""
混合匹配器
调用各评分引擎、按 A/B 权重组加权融合、根据反馈自适应调整权重
"""
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import ABTestConfig, EnsembleConfig
from exceptions import CandidateSupplyError, MatchTimeoutError, ModelUnavailableError
from models import HybridMatchResult, JobProfile, LLMResponse, MatchScore, PerformanceSnapshot, UserProfile
from search.ab_testing import ABTestAssigner
from search.base import CandidateSupplier, ProfileRepository, ScoringEngine
from search.scorer import BaselineScorer
from search.tracker import PerformanceTracker

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback_basic"
POSITIVE_ACTIONS = ("applied", "hired")
NEGATIVE_ACTIONS = ("dismissed", "not_interested")


def model_confidence(model: str, score: float) -> float:
    """各模型的 分数 -> 置信度 曲线"""
    if model == "basic":
        return 0.7
    if model == "ncf":
        return min(0.9, 0.5 + score * 0.4)
    if model == "gnn":
        return min(0.8, 0.4 + score * 0.4)
    if model == "rl":
        return min(0.95, 0.3 + score * 0.65)
    return 0.5


def is_usable(score: Optional[float]) -> bool:
    return score is not None and math.isfinite(score) and score >= 0


def combine_scores(scores: Dict[str, float], weights: Dict[str, float]) -> Optional[Tuple[float, float]]:
    """
    加权融合

    Args:
        scores: 模型 -> 分数
        weights: 模型 -> 权重

    Returns:
        (融合分数, 加权置信度)；没有任何可用的 (权重>0, 分数有效) 组合时返回 None
    """
    weighted_sum = 0.0
    confidence_sum = 0.0
    total_weight = 0.0
    for model, score in scores.items():
        weight = weights.get(model, 0.0)
        if weight <= 0 or not is_usable(score):
            continue
        weighted_sum += weight * score
        confidence_sum += weight * model_confidence(model, score)
        total_weight += weight
    if total_weight == 0:
        return None
    return weighted_sum / total_weight, confidence_sum / total_weight


def success_probability(final_score: float, confidence: float, match_quality: Optional[str]) -> float:
    probability = final_score * (0.5 + 0.5 * confidence)
    if match_quality == "excellent":
        probability *= EnsembleConfig.EXCELLENT_BONUS
    return max(0.0, min(1.0, probability))


def normalize_weights(weights: Dict[str, float]):
    """原地归一化，使权重和为 1"""
    total = sum(weights.values())
    if total > 0:
        for model in weights:
            weights[model] /= total


class HybridMatcher:
    """混合匹配协调器"""

    def __init__(
        self,
        repository: ProfileRepository,
        candidate_supplier: CandidateSupplier,
        engines: Sequence[ScoringEngine],
        explanation_service=None,
        config=EnsembleConfig,
        ab_config=ABTestConfig,
        max_workers: int = 4,
    ):
        """
        初始化协调器

        Args:
            repository: 用户 / 岗位画像来源
            candidate_supplier: 候选岗位来源
            engines: 评分引擎列表（按 name 区分）
            explanation_service: 解释生成服务（可选）
        """
        self.repository = repository
        self.candidate_supplier = candidate_supplier
        self.engines: Dict[str, ScoringEngine] = {engine.name: engine for engine in engines}
        baseline = self.engines.get("basic")
        self.baseline = baseline if isinstance(baseline, BaselineScorer) else BaselineScorer()
        self.explanation_service = explanation_service
        self.config = config

        self.ab_testing = ABTestAssigner(ab_config, config.DEFAULT_WEIGHTS)
        self._weights_lock = threading.Lock()
        self._weight_sets = self.ab_testing.initial_weight_sets()
        for weights in self._weight_sets.values():
            normalize_weights(weights)

        self.tracker = PerformanceTracker(list(self.engines) or config.MODELS, config.PERFORMANCE_ALPHA)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="matcher")

    # ---------- 权重 ----------

    def get_weights(self, group: str) -> Dict[str, float]:
        with self._weights_lock:
            return dict(self._weight_sets.get(group) or self._weight_sets["default"])

    def get_weights_for_user(self, user_id: str) -> Tuple[str, Dict[str, float]]:
        group = self.ab_testing.determine_test_group(user_id)
        return group, self.get_weights(group)

    def set_weights(self, group: str, weights: Dict[str, float]):
        """替换某个组的权重（会归一化）"""
        if any(w < 0 for w in weights.values()):
            raise ValueError("权重不能为负数")
        new_weights = dict(weights)
        normalize_weights(new_weights)
        with self._weights_lock:
            self._weight_sets[group] = new_weights

    def _update_ensemble_weights(self, user_id: str, action: str, outcome: float):
        if not self.config.ADAPTIVE_LEARNING:
            return
        cfg = self.config
        lr = cfg.ADAPTIVE_LEARNING_RATE
        action = (action or "").strip().lower()
        group = self.ab_testing.determine_test_group(user_id)

        with self._weights_lock:
            weights = self._weight_sets.setdefault(group, dict(cfg.DEFAULT_WEIGHTS))
            if action in POSITIVE_ACTIONS and outcome > cfg.POSITIVE_OUTCOME:
                # 正反馈：偏向 RL
                weights["rl"] = min(cfg.RL_WEIGHT_CAP, weights.get("rl", 0.0) + lr)
                weights["ncf"] = max(cfg.NCF_WEIGHT_FLOOR, weights.get("ncf", 0.0) - lr * 0.5)
            elif action in NEGATIVE_ACTIONS and outcome < cfg.NEGATIVE_OUTCOME:
                # 负反馈：偏向技能图
                weights["gnn"] = min(cfg.GNN_WEIGHT_CAP, weights.get("gnn", 0.0) + lr)
                weights["ncf"] = max(cfg.NCF_WEIGHT_FLOOR, weights.get("ncf", 0.0) - lr * 0.5)
            normalize_weights(weights)

    # ---------- 匹配 ----------

    def find_best_matches(self, user_id: str, limit: int = 10) -> List[HybridMatchResult]:
        """
        为用户查找最佳岗位

        Args:
            user_id: 用户ID
            limit: 返回数量，<= 0 时直接返回空列表

        Returns:
            按最终分数降序排列的匹配结果

        Raises:
            CandidateSupplyError: 用户画像或候选岗位获取失败
        """
        if limit <= 0:
            return []

        start = time.perf_counter()
        try:
            user = self.repository.get_user(user_id)
            job_ids = self.candidate_supplier.get_candidate_jobs(user_id, limit * self.config.CANDIDATE_MULTIPLIER)
        except Exception as e:
            raise CandidateSupplyError(f"获取用户 {user_id} 的候选岗位失败: {e}") from e

        group, weights = self.get_weights_for_user(user_id)
        matches = []
        for job_id in job_ids:
            try:
                job = self.repository.get_job(job_id)
            except Exception as e:
                logger.warning("跳过候选岗位 %s: %s", job_id, e)
                continue
            match = self._score_candidate(user, job, group, weights)
            if match is None or match.confidence < self.config.CONFIDENCE_THRESHOLD:
                continue
            matches.append(match)

        # 稳定排序，同分保持候选顺序
        matches.sort(key=lambda m: m.final_score, reverse=True)
        matches = matches[:limit]

        self.tracker.record_request()
        logger.info(
            "用户 %s (%s 组): %d 个候选, 返回 %d 个, 耗时 %.1f ms",
            user_id, group, len(job_ids), len(matches), (time.perf_counter() - start) * 1000,
        )
        return matches

    def find_best_matches_with_timeout(self, user_id: str, limit: int = 10, timeout: float = 5.0) -> List[HybridMatchResult]:
        """超时后调用方不再等待，后台计算会继续完成"""
        future = self._executor.submit(self.find_best_matches, user_id, limit)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            raise MatchTimeoutError(f"用户 {user_id} 的匹配计算超过 {timeout}s") from None

    def calculate_match_score(self, user_id: str, job_id: str) -> HybridMatchResult:
        """计算单个用户-岗位的混合匹配分（不做置信度过滤）"""
        user, job = self._load_pair(user_id, job_id)
        group, weights = self.get_weights_for_user(user_id)
        match = self._score_candidate(user, job, group, weights)
        if match is None:
            raise ModelUnavailableError("ensemble", f"没有可用模型为 {user_id} / {job_id} 打分")
        return match

    def _load_pair(self, user_id: str, job_id: str) -> Tuple[UserProfile, JobProfile]:
        try:
            return self.repository.get_user(user_id), self.repository.get_job(job_id)
        except Exception as e:
            raise CandidateSupplyError(f"获取画像失败 {user_id} / {job_id}: {e}") from e

    def _score_candidate(self, user: UserProfile, job: JobProfile, group: str,
                         weights: Dict[str, float]) -> Optional[HybridMatchResult]:
        start = time.perf_counter()
        scores: Dict[str, float] = {}
        baseline: Optional[MatchScore] = None

        for name, engine in self.engines.items():
            weight = weights.get(name, 0.0)
            if weight <= 0:
                continue
            t0 = time.perf_counter()
            try:
                prediction = engine.predict(user, job)
            except Exception as e:
                # 单个模型失败只记录，不影响其他模型
                logger.warning("模型 %s 评分失败 (%s / %s): %s", name, user.user_id, job.job_id, e)
                self.tracker.record_error(name)
                continue
            if prediction.match_score is not None:
                baseline = prediction.match_score
            if not is_usable(prediction.score):
                self.tracker.record_error(name)
                continue
            scores[name] = prediction.score
            self.tracker.record_prediction(
                name, prediction.score, model_confidence(name, prediction.score),
                (time.perf_counter() - t0) * 1000, weight,
            )

        combined = combine_scores(scores, weights)
        if combined is not None:
            final_score, confidence = combined
            used = {m: weights[m] for m in scores}
            model_used = max(used, key=used.get)
        else:
            if baseline is None:
                baseline = self._fallback_baseline(user, job)
            if baseline is None or baseline.total_score <= 0:
                return None
            self.tracker.record_fallback()
            final_score, confidence = baseline.total_score, self.config.FALLBACK_CONFIDENCE
            scores = {"basic": baseline.total_score}
            used = {}
            model_used = FALLBACK_MODEL

        quality = baseline.match_quality if baseline else None
        return HybridMatchResult(
            user_id=user.user_id,
            job_id=job.job_id,
            final_score=final_score,
            confidence=confidence,
            success_probability=success_probability(final_score, confidence, quality),
            model_scores=scores,
            model_weights=used,
            model_used=model_used,
            test_group=group,
            match_quality=quality,
            baseline=baseline,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    def _fallback_baseline(self, user: UserProfile, job: JobProfile) -> Optional[MatchScore]:
        try:
            return self.baseline.calculate_score(user, job)
        except Exception as e:
            logger.warning("基础评分失败 (%s / %s): %s", user.user_id, job.job_id, e)
            self.tracker.record_error("basic")
            return None

    # ---------- 反馈 ----------

    def process_user_feedback(self, user_id: str, job_id: str, action: str, outcome: float):
        """
        处理用户反馈：更新策略引擎、嵌入引擎，并自适应调整权重

        Args:
            user_id: 用户ID
            job_id: 岗位ID
            action: 用户行为
            outcome: 结果强度 (0-1)
        """
        if not 0.0 <= outcome <= 1.0:
            raise ValueError(f"outcome 必须在 [0, 1] 之间: {outcome}")
        user, job = self._load_pair(user_id, job_id)

        policy = self.engines.get("rl")
        if policy is not None and hasattr(policy, "process_user_feedback"):
            self._apply_feedback("rl", policy.process_user_feedback, user, job, action, outcome)

        ncf = self.engines.get("ncf")
        if ncf is not None and hasattr(ncf, "update_embeddings"):
            self._apply_feedback("ncf", self._update_ncf, ncf, user_id, job_id, outcome)

        self._update_ensemble_weights(user_id, action, outcome)
        self.tracker.record_feedback()
        logger.debug("反馈已处理: %s -> %s (%s, %.2f)", user_id, job_id, action, outcome)

    def _apply_feedback(self, name: str, update, *args):
        try:
            update(*args)
        except Exception as e:
            # 单个引擎更新失败只记录，其余引擎和权重照常更新
            logger.warning("模型 %s 反馈更新失败: %s", name, e)
            self.tracker.record_error(name)

    @staticmethod
    def _update_ncf(ncf, user_id: str, job_id: str, outcome: float):
        ncf.initialize_embeddings([user_id], [job_id])
        ncf.update_embeddings(user_id, job_id, outcome)

    # ---------- 解释 ----------

    def _require_explanations(self):
        if self.explanation_service is None:
            raise ModelUnavailableError("llm", "未配置解释生成服务")
        return self.explanation_service

    def get_match_explanation(self, user_id: str, job_id: str, tier: str = None) -> LLMResponse:
        service = self._require_explanations()
        user, job = self._load_pair(user_id, job_id)
        match = self.baseline.calculate_score(user, job)
        return service.explain_match(user, job, match, tier=tier)

    def get_skill_gap_analysis(self, user_id: str, job_id: str, tier: str = None) -> LLMResponse:
        service = self._require_explanations()
        user, job = self._load_pair(user_id, job_id)
        return service.analyze_skill_gaps(user, job, tier=tier)

    def get_career_advice(self, user_id: str, career_goals: str, tier: str = None) -> LLMResponse:
        service = self._require_explanations()
        try:
            user = self.repository.get_user(user_id)
        except Exception as e:
            raise CandidateSupplyError(f"获取用户画像失败 {user_id}: {e}") from e
        return service.generate_career_advice(user, career_goals, tier=tier)

    # ---------- 状态 ----------

    def get_model_performance_metrics(self) -> PerformanceSnapshot:
        with self._weights_lock:
            weights = {g: dict(w) for g, w in self._weight_sets.items()}
        return self.tracker.snapshot(weights)

    def health_check(self) -> Dict[str, Any]:
        """通过各引擎公开的状态接口汇总健康状况"""
        models = {}
        for name, engine in self.engines.items():
            try:
                healthy = bool(engine.is_healthy())
                info = engine.get_model_info()
                models[name] = {"healthy": healthy, "model_type": info.model_type, "version": info.version}
            except Exception as e:
                logger.error("模型 %s 健康检查失败: %s", name, e)
                models[name] = {"healthy": False, "error": str(e)}
        return {
            "healthy": bool(models) and all(m["healthy"] for m in models.values()),
            "models": models,
            "explanations": self.explanation_service is not None,
        }

    def close(self):
        self._executor.shutdown(wait=False)
