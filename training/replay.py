"""
经验回放缓冲区
定长环形缓冲，写满后覆盖最旧的经验
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import numpy as np


@dataclass
class Experience:
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    done: bool
    timestamp: datetime = field(default_factory=datetime.now)


class ExperienceReplay:
    """环形经验缓冲区"""

    def __init__(self, capacity: int, rng: Optional[np.random.Generator] = None):
        if capacity <= 0:
            raise ValueError(f"缓冲区容量必须为正数: {capacity}")
        self.capacity = capacity
        self.rng = rng if rng is not None else np.random.default_rng()
        self._items: List[Optional[Experience]] = [None] * capacity
        self._position = 0
        self._size = 0
        self._lock = threading.Lock()

    def add(self, experience: Experience):
        with self._lock:
            self._items[self._position] = experience
            self._position = (self._position + 1) % self.capacity
            if self._size < self.capacity:
                self._size += 1

    def sample(self, batch_size: int) -> List[Experience]:
        """有放回随机采样，batch_size 超过当前数量时按当前数量采样"""
        with self._lock:
            n = min(batch_size, self._size)
            if n <= 0:
                return []
            indices = self.rng.integers(0, self._size, size=n)
            return [self._items[i] for i in indices]

    def __len__(self):
        with self._lock:
            return self._size

    @property
    def position(self) -> int:
        return self._position

    def snapshot(self) -> List[Experience]:
        """按写入顺序（旧 -> 新）返回当前经验"""
        with self._lock:
            if self._size < self.capacity:
                return list(self._items[:self._size])
            return self._items[self._position:] + self._items[:self._position]
