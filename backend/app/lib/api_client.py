import threading
from typing import Any, Callable, Optional

from supabase import Client, create_client

from app.core.config import app_config


class _LazySupabaseClient:
    """
    首次访问时才创建 Supabase Client。

    中文注释:
    - 内存存储模式下从不触达 client，缺少 SUPABASE_URL 也能正常 import。
    - 工作流写操作会在线程池中并发执行，创建过程加锁，保证只建一个 client。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None
        self._init_lock = threading.Lock()

    def _resolve(self) -> Client:
        client = self._client
        if client is None:
            with self._init_lock:
                if self._client is None:
                    self._client = self._factory()
                client = self._client
        return client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._resolve(), item)

    def __repr__(self) -> str:
        state = "ready" if self._client is not None else "pending"
        return f"<{self._name} ({state})>"


def _service_role_client() -> Client:
    missing = [
        env
        for env, value in (("SUPABASE_URL", app_config.supabase_url), ("SUPABASE_SERVICE_ROLE_KEY", app_config.supabase_key))
        if not value
    ]
    if missing:
        raise RuntimeError(f"supabase store requires {', '.join(missing)}")
    return create_client(app_config.supabase_url, app_config.supabase_key)


# service_role 客户端：绕过 RLS，仅供后端 store / 通知写入使用
supabase_admin: Client = _LazySupabaseClient(_service_role_client, name="supabase_admin")  # type: ignore[assignment]
