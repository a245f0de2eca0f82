"""
状态特征提取
把 (用户, 岗位) 编码成策略网络使用的定长状态向量：20 维用户 + 15 维岗位 + 10 维上下文
"""
import hashlib
from typing import Dict, List

import numpy as np

from config import BaselineConfig, RLConfig
from models import JobProfile, UserProfile

USER_BUCKETS = 7
JOB_BUCKETS = 4


def _bucket(name: str, buckets: int) -> int:
    # 稳定哈希，不受 PYTHONHASHSEED 影响
    digest = hashlib.md5(name.strip().lower().encode('utf-8')).hexdigest()
    return int(digest, 16) % buckets


def _level(level) -> int:
    if not level:
        return 0
    return BaselineConfig.EXPERIENCE_ORDER.get(str(level).strip().lower(), 0)


def _one_hot_level(level) -> List[float]:
    value = _level(level)
    return [1.0 if value == i else 0.0 for i in (1, 2, 3)] + [1.0 if value == 0 else 0.0]


def user_features(user: UserProfile) -> Dict[str, float]:
    skills = user.skills
    levels = [s.level for s in skills]
    feats = {
        'user_skill_count': min(len(skills) / 20.0, 1.0),
        'user_mean_level': float(np.mean(levels)) / 5.0 if levels else 0.0,
        'user_max_level': max(levels) / 5.0 if levels else 0.0,
        'user_verified_ratio': sum(1 for s in skills if s.verified) / len(skills) if skills else 0.0,
        'user_mean_years': min(float(np.mean([s.experience for s in skills])) / 10.0, 1.0) if skills else 0.0,
    }
    for name, value in zip(('entry', 'intermediate', 'advanced', 'unknown'), _one_hot_level(user.experience_level)):
        feats[f'user_level_{name}'] = value
    feats['user_hours'] = min(user.availability.hours_per_week / 40.0, 1.0)
    feats['user_flexible'] = 1.0 if user.availability.is_flexible else 0.0
    feats['user_has_location'] = 1.0 if user.location else 0.0
    feats['user_interest_count'] = min(len(user.interests) / 10.0, 1.0)

    buckets = [0.0] * USER_BUCKETS
    for s in skills:
        buckets[_bucket(s.name, USER_BUCKETS)] += s.level / 5.0
    total = sum(buckets)
    for i, value in enumerate(buckets):
        feats[f'user_skill_bucket_{i}'] = value / total if total else 0.0
    return feats


def job_features(job: JobProfile) -> Dict[str, float]:
    skills = job.skills
    feats = {
        'job_skill_count': min(len(skills) / 20.0, 1.0),
        'job_mean_level': float(np.mean([s.level for s in skills])) / 5.0 if skills else 0.0,
        'job_required_ratio': sum(1 for s in skills if s.is_required) / len(skills) if skills else 0.0,
        'job_mean_importance': float(np.mean([s.importance for s in skills])) if skills else 0.0,
    }
    for name, value in zip(('entry', 'intermediate', 'advanced', 'unknown'), _one_hot_level(job.experience_level)):
        feats[f'job_level_{name}'] = value
    feats['job_remote'] = 1.0 if job.is_remote else 0.0
    feats['job_has_location'] = 1.0 if job.location else 0.0
    feats['job_duration'] = min(job.duration / 40.0, 1.0) if job.duration > 0 else 0.0

    buckets = [0.0] * JOB_BUCKETS
    for s in skills:
        buckets[_bucket(s.name, JOB_BUCKETS)] += s.importance
    total = sum(buckets)
    for i, value in enumerate(buckets):
        feats[f'job_skill_bucket_{i}'] = value / total if total else 0.0
    return feats


def context_features(user: UserProfile, job: JobProfile) -> Dict[str, float]:
    own = {s.name.lower(): s for s in user.skills}
    required = {s.name.lower(): s for s in job.skills}
    matched = [name for name in required if name in own]
    required_only = [name for name, s in required.items() if s.is_required]
    union = set(own) | set(required)

    shortfall = [max(0, required[n].level - own[n].level) for n in matched]
    if job.duration > 0:
        availability = min(user.availability.hours_per_week / job.duration, 1.0)
    else:
        availability = 0.5
    category = (job.category or '').lower()

    return {
        'ctx_skill_overlap': len(matched) / len(required) if required else 0.0,
        'ctx_required_coverage': (
            sum(1 for n in required_only if n in own) / len(required_only) if required_only else 1.0
        ),
        'ctx_level_diff': (_level(user.experience_level) - _level(job.experience_level)) / 2.0,
        'ctx_location_match': 1.0 if user.location and job.location and user.location.lower() == job.location.lower() else 0.0,
        'ctx_remote': 1.0 if job.is_remote else 0.0,
        'ctx_availability': availability,
        'ctx_interest_hit': 1.0 if category and any(i.lower() in category for i in user.interests if i) else 0.0,
        'ctx_level_shortfall': float(np.mean(shortfall)) / 5.0 if shortfall else 0.0,
        'ctx_skill_jaccard': len(matched) / len(union) if union else 0.0,
        'ctx_bias': 1.0,
    }


def extract(user: UserProfile, job: JobProfile) -> Dict[str, float]:
    """按固定顺序返回全部命名特征"""
    feats = {}
    feats.update(user_features(user))
    feats.update(job_features(job))
    feats.update(context_features(user, job))
    return feats


class StateEncoder:
    """状态向量编码器"""

    def __init__(self, state_dim: int = RLConfig.STATE_DIM):
        self.state_dim = state_dim

    def encode(self, user: UserProfile, job: JobProfile) -> np.ndarray:
        values = list(extract(user, job).values())
        if len(values) != self.state_dim:
            raise ValueError(f"状态维度不一致: 期望 {self.state_dim}, 实际 {len(values)}")
        return np.asarray(values, dtype=np.float32)

    def feature_names(self, user: UserProfile, job: JobProfile) -> List[str]:
        return list(extract(user, job).keys())
