"""
Global Verification Cache：跨路由的動作結果快取

共用的 nav bar、footer 在每一頁都會出現，只需要實測一次：
1. 第一次遇到 → 實測 → 存入快取
2. 之後遇到同一個 GlobalKey → 直接回傳第一次的結果（不碰 DOM）

規則：
- Dead 不存，下次遇到仍會實測
- 第一個存入的結果勝出，之後唯讀，不會被覆寫
- 每個稽核 run 一份，不跨 run 保存

用法：
    cache = GlobalVerificationCache()
    outcome = cache.get(key)
    if outcome is None:
        outcome = classifier.classify(el)
        cache.put(key, outcome)
"""

from __future__ import annotations

from dataclasses import dataclass, field
import time

from auditor.models import ActionOutcome, GlobalKey
from utils.logger import logger


@dataclass
class CacheEntry:
    """快取條目"""
    outcome: ActionOutcome
    route_id: str = ""
    created_at: float = field(default_factory=time.time)
    hit_count: int = 0


class GlobalVerificationCache:
    """以 GlobalKey 的 canonical 字串為 key 的結果快取"""

    def __init__(self):
        self._store: dict[str, CacheEntry] = {}
        self._stats = {"hits": 0, "misses": 0, "stores": 0}

    def get(self, key: GlobalKey) -> ActionOutcome | None:
        entry = self._store.get(key.canonical())
        if entry is None:
            self._stats["misses"] += 1
            return None
        entry.hit_count += 1
        self._stats["hits"] += 1
        return entry.outcome

    def put(self, key: GlobalKey, outcome: ActionOutcome, route_id: str = "") -> bool:
        """
        存入結果。

        Returns:
            True = 已存入, False = Dead 或 key 已存在
        """
        if not outcome.cacheable:
            return False
        canonical = key.canonical()
        if canonical in self._store:
            return False
        self._store[canonical] = CacheEntry(outcome=outcome, route_id=route_id)
        self._stats["stores"] += 1
        logger.debug(f"[Cache] 存入 {canonical} → {outcome.action}")
        return True

    def __contains__(self, key: GlobalKey) -> bool:
        return key.canonical() in self._store

    def clear(self) -> None:
        self._store.clear()
        logger.debug("[Cache] 已清除")

    @property
    def size(self) -> int:
        return len(self._store)

    def reuse_counts(self) -> dict[str, dict]:
        """被重用過的 key → 第一次實測所在路由與重用次數，依次數由多到少"""
        reused = sorted(
            ((k, e) for k, e in self._store.items() if e.hit_count > 0),
            key=lambda item: item[1].hit_count,
            reverse=True,
        )
        return {k: {"route_id": e.route_id, "hits": e.hit_count} for k, e in reused}

    @property
    def stats(self) -> dict:
        s = self._stats
        total = s["hits"] + s["misses"]
        rate = s["hits"] / total if total > 0 else 0.0
        return {
            **s,
            "size": self.size,
            "total": total,
            "hit_rate": rate,
            "reused_keys": len(self.reuse_counts()),
        }
