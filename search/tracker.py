"""
模型表现追踪
每个模型的分数 / 置信度指数滑动平均、预测次数、错误次数
"""
import threading
from datetime import datetime
from typing import Dict, Iterable

from config import EnsembleConfig
from models import ModelPerformance, PerformanceSnapshot


class PerformanceTracker:
    """协调器的滚动表现统计（独立锁）"""

    def __init__(self, model_names: Iterable[str], alpha: float = EnsembleConfig.PERFORMANCE_ALPHA):
        self.alpha = alpha
        self._lock = threading.Lock()
        self._models: Dict[str, ModelPerformance] = {name: ModelPerformance(model=name) for name in model_names}
        self.fallback_count = 0
        self.total_requests = 0
        self.feedback_count = 0

    def _get(self, model: str) -> ModelPerformance:
        perf = self._models.get(model)
        if perf is None:
            perf = ModelPerformance(model=model)
            self._models[model] = perf
        return perf

    def record_prediction(self, model: str, score: float, confidence: float, elapsed_ms: float = 0.0, weight: float = None):
        with self._lock:
            perf = self._get(model)
            perf.total_predictions += 1
            if perf.total_predictions == 1:
                perf.average_score = score
                perf.average_confidence = confidence
                perf.average_processing_ms = elapsed_ms
            else:
                a = self.alpha
                perf.average_score = a * score + (1 - a) * perf.average_score
                perf.average_confidence = a * confidence + (1 - a) * perf.average_confidence
                perf.average_processing_ms = a * elapsed_ms + (1 - a) * perf.average_processing_ms
            if weight is not None:
                perf.contribution_weight = weight
            perf.last_updated = datetime.now()

    def record_error(self, model: str):
        with self._lock:
            self._get(model).error_count += 1

    def record_fallback(self):
        with self._lock:
            self.fallback_count += 1

    def record_request(self):
        with self._lock:
            self.total_requests += 1

    def record_feedback(self):
        with self._lock:
            self.feedback_count += 1

    def snapshot(self, weights: Dict[str, Dict[str, float]] = None) -> PerformanceSnapshot:
        """深拷贝快照，调用方可以随意修改"""
        with self._lock:
            return PerformanceSnapshot(
                models={name: perf.model_copy(deep=True) for name, perf in self._models.items()},
                weights={g: dict(w) for g, w in (weights or {}).items()},
                fallback_count=self.fallback_count,
                total_requests=self.total_requests,
                feedback_count=self.feedback_count,
            )
