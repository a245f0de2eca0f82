"""
内存画像仓库
同时充当画像来源和候选岗位来源
"""
import threading
from typing import Callable, Dict, Iterable, List, Optional

from models import JobProfile, UserProfile


class InMemoryRepository:
    """按ID存放用户和岗位画像"""

    def __init__(self, users: Iterable[UserProfile] = (), jobs: Iterable[JobProfile] = (),
                 candidate_filter: Optional[Callable[[UserProfile, JobProfile], bool]] = None):
        self._lock = threading.Lock()
        self.users: Dict[str, UserProfile] = {u.user_id: u for u in users}
        self.jobs: Dict[str, JobProfile] = {j.job_id: j for j in jobs}
        self.candidate_filter = candidate_filter

    def add_user(self, user: UserProfile):
        with self._lock:
            self.users[user.user_id] = user

    def add_job(self, job: JobProfile):
        with self._lock:
            self.jobs[job.job_id] = job

    def get_user(self, user_id: str) -> UserProfile:
        with self._lock:
            if user_id not in self.users:
                raise KeyError(f"用户不存在: {user_id}")
            return self.users[user_id]

    def get_job(self, job_id: str) -> JobProfile:
        with self._lock:
            if job_id not in self.jobs:
                raise KeyError(f"岗位不存在: {job_id}")
            return self.jobs[job_id]

    def get_candidate_jobs(self, user_id: str, limit: int) -> List[str]:
        """按加入顺序返回候选岗位ID，可选按 candidate_filter 预筛"""
        user = self.get_user(user_id)
        with self._lock:
            jobs = list(self.jobs.values())
        if self.candidate_filter:
            jobs = [job for job in jobs if self.candidate_filter(user, job)]
        return [job.job_id for job in jobs[:max(limit, 0)]]
