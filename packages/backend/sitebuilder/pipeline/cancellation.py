from __future__ import annotations

import threading
from typing import Dict, Optional

from ..exceptions import GenerationCancelled


class CancellationToken:
    """Cooperative cancellation flag polled by the stage controller."""

    def __init__(self, request_id: Optional[str] = None) -> None:
        self.request_id = request_id
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled(f"Generation cancelled ({self.reason or 'cancelled'})")


class CancellationRegistry:
    """Process-wide map of request id to cancellation token."""

    _instance: Optional["CancellationRegistry"] = None

    def __init__(self) -> None:
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "CancellationRegistry":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def register(self, request_id: str) -> CancellationToken:
        with self._lock:
            token = self._tokens.get(request_id)
            if token is None:
                token = CancellationToken(request_id)
                self._tokens[request_id] = token
            return token

    def unregister(self, request_id: str) -> None:
        with self._lock:
            self._tokens.pop(request_id, None)

    def get(self, request_id: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(request_id)

    def cancel(self, request_id: str, reason: str = "cancelled") -> bool:
        token = self.get(request_id)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._tokens)


__all__ = ["CancellationToken", "CancellationRegistry"]
