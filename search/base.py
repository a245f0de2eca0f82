"""
评分引擎与外部协作方的接口约定
"""
from typing import List, Protocol, runtime_checkable

from models import JobProfile, ModelInfo, ModelPrediction, UserProfile


@runtime_checkable
class ScoringEngine(Protocol):
    """协调器可调用的评分引擎"""

    name: str

    def predict(self, user: UserProfile, job: JobProfile) -> ModelPrediction:
        ...

    def get_model_info(self) -> ModelInfo:
        ...

    def is_healthy(self) -> bool:
        ...


class ProfileRepository(Protocol):
    """用户 / 岗位画像来源"""

    def get_user(self, user_id: str) -> UserProfile:
        ...

    def get_job(self, job_id: str) -> JobProfile:
        ...


class CandidateSupplier(Protocol):
    """候选岗位来源（检索 / 过滤层）"""

    def get_candidate_jobs(self, user_id: str, limit: int) -> List[str]:
        ...
