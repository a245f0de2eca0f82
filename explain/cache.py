"""
解释结果缓存
带 TTL 和容量上限，满时淘汰最早创建的条目
"""
import hashlib
import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from config import ExplanationConfig
from locks import ReadWriteLock
from models import CachedResponse

logger = logging.getLogger(__name__)


def make_cache_key(request_type: str, user_id: str, **fields: Any) -> str:
    """对 (请求类型, 用户ID, 相关字段) 的规范化 JSON 取 md5"""
    payload = {"type": request_type, "user_id": user_id, **fields}
    data = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.md5(data.encode("utf-8")).hexdigest()


class ResponseCache:
    """线程安全的解释缓存"""

    def __init__(self, ttl_hours: float = ExplanationConfig.CACHE_TTL_HOURS,
                 max_size: int = ExplanationConfig.CACHE_MAX_SIZE,
                 clock: Callable[[], datetime] = datetime.now):
        if max_size <= 0:
            raise ValueError("max_size 必须大于 0")
        self.ttl = timedelta(hours=ttl_hours)
        self.max_size = max_size
        self.clock = clock
        self._lock = ReadWriteLock()
        self._entries: Dict[str, CachedResponse] = {}
        self._stats_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[CachedResponse]:
        """命中返回副本；过期条目视为未命中，留给定期清理"""
        now = self.clock()
        with self._lock.read():
            entry = self._entries.get(key)
            found = entry is not None and entry.expires_at > now
            result = entry.model_copy(deep=True) if found else None
        with self._stats_lock:
            if found:
                self.hits += 1
            else:
                self.misses += 1
        return result

    def put(self, key: str, content: str, tokens_used: int = 0, cost: float = 0.0,
            metadata: Dict[str, Any] = None) -> CachedResponse:
        now = self.clock()
        entry = CachedResponse(
            content=content,
            tokens_used=tokens_used,
            cost=cost,
            created_at=now,
            expires_at=now + self.ttl,
            metadata=dict(metadata or {}),
        )
        with self._lock.write():
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = entry
        return entry

    def _evict_oldest(self):
        oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest]
        logger.debug("缓存已满，淘汰 %s", oldest)

    def sweep_expired(self) -> int:
        """删除所有过期条目，返回删除数量"""
        now = self.clock()
        with self._lock.write():
            expired = [k for k, v in self._entries.items() if v.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("清理过期缓存 %d 条", len(expired))
        return len(expired)

    def hit_rate(self) -> float:
        with self._stats_lock:
            total = self.hits + self.misses
            return self.hits / total if total else 0.0

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
