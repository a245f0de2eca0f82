"""
A/B 实验分组
按用户ID稳定哈希分配权重组
"""
from datetime import datetime
from typing import Dict, Optional

from config import ABTestConfig, EnsembleConfig

DEFAULT_GROUP = "default"


def stable_hash(value: str) -> int:
    """32 位多项式哈希 (h * 31 + ch)，与进程无关"""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


class ABTestAssigner:
    """用户 -> 实验组"""

    def __init__(self, config=ABTestConfig, default_weights: Dict[str, float] = None):
        self.enabled = config.ENABLED
        self.traffic_split = config.TRAFFIC_SPLIT
        self.start_date: Optional[datetime] = config.START_DATE
        self.end_date: Optional[datetime] = config.END_DATE
        self.weight_sets = {name: dict(w) for name, w in config.WEIGHT_SETS.items()}
        self.default_weights = dict(default_weights or EnsembleConfig.DEFAULT_WEIGHTS)

    def is_active(self, now: datetime = None) -> bool:
        if not self.enabled:
            return False
        now = now or datetime.now()
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True

    def determine_test_group(self, user_id: str, now: datetime = None) -> str:
        """同一用户在实验期内始终落在同一组"""
        if not self.is_active(now):
            return DEFAULT_GROUP
        bucket = stable_hash(user_id) % 100
        return "control" if bucket < self.traffic_split * 100 else "treatment"

    def initial_weight_sets(self) -> Dict[str, Dict[str, float]]:
        sets = {name: dict(w) for name, w in self.weight_sets.items()}
        sets[DEFAULT_GROUP] = dict(self.default_weights)
        return sets
