from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterable, Iterator

from app.core.errors import StorageError


class LockTimeoutError(StorageError):
    """等待稿件锁超时（视为基础设施错误）。"""


class KeyedLock:
    """
    进程内按 key 互斥的锁（稿件级串行化）。

    设计目标：
    - 同一稿件的“校验 + 持久化”同一时刻只有一个写操作在执行；
    - 不同稿件之间互不阻塞；
    - 引用计数回收：无人持有/等待的 key 会被移除，字典不会无限增长；
    - 不跨进程：多 worker 部署需在存储层配合行锁。
    """

    def __init__(self, *, timeout_sec: float = 30.0) -> None:
        self._timeout = float(timeout_sec or 30.0)
        self._guard = Lock()
        self._locks: dict[str, tuple[Lock, int]] = {}

    def _checkout(self, key: str) -> Lock:
        with self._guard:
            lock, refs = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, refs + 1)
            return lock

    def _release(self, key: str) -> None:
        with self._guard:
            lock, refs = self._locks[key]
            if refs <= 1:
                self._locks.pop(key, None)
            else:
                self._locks[key] = (lock, refs - 1)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        acquired = lock.acquire(timeout=self._timeout)
        if not acquired:
            self._release(key)
            raise LockTimeoutError(f"Timed out waiting for lock on {key}")
        try:
            yield
        finally:
            lock.release()
            self._release(key)

    @contextmanager
    def hold_many(self, keys: Iterable[str]) -> Iterator[None]:
        # 固定顺序加锁，避免批量操作之间互相死锁
        ordered = sorted({str(k) for k in keys})
        held: list[tuple[str, Lock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                if not lock.acquire(timeout=self._timeout):
                    self._release(key)
                    raise LockTimeoutError(f"Timed out waiting for lock on {key}")
                held.append((key, lock))
            yield
        finally:
            for key, lock in reversed(held):
                lock.release()
                self._release(key)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)
