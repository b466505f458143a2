"""
Optimistic local updates as an explicit three-phase operation:
apply locally, confirm with the server's answer, compensate on error.
"""
from typing import Any, Awaitable, Callable, MutableMapping

_MISSING = object()


class OptimisticUpdate:
    """One optimistic write to ``cache[key]``."""

    def __init__(self, cache: MutableMapping, key: Any, value: Any):
        self.cache = cache
        self.key = key
        self.value = value
        self.phase = "pending"
        self._previous = _MISSING

    def apply(self):
        self._previous = self.cache.get(self.key, _MISSING)
        self.cache[self.key] = self.value
        self.phase = "applied"

    def confirm(self, server_value: Any = _MISSING):
        """Keep the change, replacing it with the server's value when given."""
        if server_value is not _MISSING:
            self.cache[self.key] = server_value
        self.phase = "confirmed"

    def compensate(self):
        """Undo the local change."""
        if self._previous is _MISSING:
            self.cache.pop(self.key, None)
        else:
            self.cache[self.key] = self._previous
        self.phase = "compensated"


async def run_optimistic(cache: MutableMapping, key: Any, value: Any,
                         remote_call: Callable[[], Awaitable[Any]]) -> Any:
    """Apply ``value`` locally, run ``remote_call`` and confirm or roll back."""
    update = OptimisticUpdate(cache, key, value)
    update.apply()
    try:
        result = await remote_call()
    except Exception:
        update.compensate()
        raise
    update.confirm(result)
    return result
