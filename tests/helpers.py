"""测试用画像构造函数与桩引擎"""
import time

from models import (
    Availability, JobProfile, ModelInfo, ModelPrediction, RequiredSkill, UserProfile, UserSkill,
)


def make_user(user_id="u1", skills=(("python", 3), ("sql", 2)), level="intermediate",
              location="San Francisco", hours=40, interests=("data",)):
    return UserProfile(
        user_id=user_id,
        skills=[UserSkill(name=n, level=l) for n, l in skills],
        experience_level=level,
        location=location,
        availability=Availability(hours_per_week=hours),
        interests=list(interests),
    )


def make_job(job_id="j1", skills=(("python", 3), ("sql", 3)), level="intermediate",
             location="Oakland", category="data_science", duration=20, remote=False):
    return JobProfile(
        job_id=job_id,
        title=f"岗位 {job_id}",
        skills=[RequiredSkill(name=n, level=l) for n, l in skills],
        experience_level=level,
        location=location,
        category=category,
        duration=duration,
        is_remote=remote,
    )


class StaticEngine:
    """测试用评分引擎：按岗位返回固定分数，可配置抛错或延迟"""

    def __init__(self, name, score=0.5, per_job=None, fail_on=(), delay=0.0):
        self.name = name
        self.score = score
        self.per_job = per_job or {}
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = 0

    def predict(self, user, job):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if "*" in self.fail_on or job.job_id in self.fail_on:
            raise RuntimeError(f"{self.name} 故障")
        score = self.per_job.get(job.job_id, self.score)
        return ModelPrediction(model=self.name, score=score, confidence=0.5)

    def get_model_info(self):
        return ModelInfo(model_id=self.name, model_type=self.name, version="test", loaded_at="2024-01-01T00:00:00")

    def is_healthy(self):
        return True

