"""认证失败限流器"""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from time import monotonic
from typing import Callable

from eventdrop.core.config import settings


@dataclass
class AuthFailureEntry:
    count: int
    first_attempt: float
    blocked_until: float = 0.0


@dataclass(frozen=True)
class BlockStatus:
    blocked: bool
    retry_after: int = 0


class AuthRateLimiter:
    """按 (客户端地址, 活动, 用户名) 记录认证失败次数

    窗口内失败次数达到 max_attempts 后封禁 block_seconds 秒。
    条目不会被定时清理，只在同一个 key 再次查询时惰性删除。
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        window_seconds: float | None = None,
        block_seconds: float | None = None,
        clock: Callable[[], float] = monotonic,
    ):
        self._max_attempts = max_attempts
        self._window = window_seconds
        self._block = block_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str, str], AuthFailureEntry] = {}
        # 事件循环和工作线程都会访问
        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return self._max_attempts
        return settings.auth_rate_limit_max_attempts

    @property
    def window(self) -> float:
        if self._window is not None:
            return self._window
        return settings.auth_rate_limit_window_seconds

    @property
    def block(self) -> float:
        if self._block is not None:
            return self._block
        return settings.auth_rate_limit_block_seconds

    @property
    def enabled(self) -> bool:
        return self.max_attempts > 0

    def _prune(self, key: tuple[str, str, str], entry: AuthFailureEntry, now: float) -> AuthFailureEntry | None:
        if entry.blocked_until > now:
            return entry
        if now - entry.first_attempt > self.window:
            del self._entries[key]
            return None
        return entry

    def is_blocked(self, client: str, event_id: str, user: str) -> BlockStatus:
        if not self.enabled:
            return BlockStatus(blocked=False)
        key = (client, event_id, user)
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                return BlockStatus(blocked=False)
            now = self._clock()
            entry = self._prune(key, existing, now)
            if entry is None or entry.blocked_until <= now:
                return BlockStatus(blocked=False)
            return BlockStatus(blocked=True, retry_after=math.ceil(entry.blocked_until - now))

    def record_failure(self, client: str, event_id: str, user: str) -> None:
        if not self.enabled:
            return
        key = (client, event_id, user)
        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is None or now - existing.first_attempt > self.window:
                existing = AuthFailureEntry(count=0, first_attempt=now)
                self._entries[key] = existing
            existing.count += 1
            if existing.count >= self.max_attempts:
                existing.blocked_until = now + self.block

    def clear(self, client: str, event_id: str, user: str) -> None:
        with self._lock:
            self._entries.pop((client, event_id, user), None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


auth_limiter = AuthRateLimiter()
