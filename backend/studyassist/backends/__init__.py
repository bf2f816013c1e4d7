"""Backend clients for auth and study-session storage.

`get_backend()` returns the client selected by `STUDYASSIST_BACKEND`:
`local` (SQLModel/SQLite, for development and tests) or `supabase`
(the hosted provider over HTTP).
"""

from functools import lru_cache

from .base import AuthError, BackendClient, BackendError, OperationError

__all__ = ["AuthError", "BackendClient", "BackendError", "OperationError", "get_backend"]


@lru_cache(maxsize=1)
def get_backend() -> BackendClient:
    from ..config import settings

    if settings.BACKEND == "supabase":
        from .supabase import SupabaseBackend
        return SupabaseBackend(
            url=settings.SUPABASE_URL,
            anon_key=settings.SUPABASE_ANON_KEY,
            timeout=settings.SUPABASE_TIMEOUT_SECONDS,
        )
    from .local import LocalBackend
    return LocalBackend()
