"""Storage adapter contract shared by every backend.

An adapter is any object providing the :class:`StoreAdapter` capability set.
Sign-in and remote settings are optional capabilities, checked at runtime
with ``isinstance(adapter, SignInCapable)`` / ``SettingsCapable``.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, TypeVar, runtime_checkable

from being_better.errors import SignInInProgressError
from being_better.models.entries import CheckInEntry, RatingEntry, RatingsRange

T = TypeVar("T")


class AuthState(str, Enum):
    INITIALIZING = "initializing"
    NEEDS_LOGIN = "needs_login"
    CONNECTED = "connected"


@runtime_checkable
class StoreAdapter(Protocol):
    async def init(self) -> None: ...

    async def append_rating(self, entry: RatingEntry) -> None: ...

    async def list_ratings(self, range_: RatingsRange) -> list[RatingEntry]: ...

    async def append_check_in(self, entry: CheckInEntry) -> None: ...

    async def list_check_ins(self, range_: RatingsRange) -> list[CheckInEntry]: ...

    def is_ready(self) -> bool: ...

    def get_auth_state(self) -> AuthState: ...


@runtime_checkable
class SignInCapable(Protocol):
    async def request_sign_in(self) -> None: ...


@runtime_checkable
class SettingsCapable(Protocol):
    async def save_settings(self, blob: dict[str, str]) -> None: ...

    async def load_settings(self) -> dict[str, str]: ...


class SignInSlot:
    """Holds at most one in-flight interactive sign-in.

    A second ``run()`` while the first is pending raises
    :class:`SignInInProgressError` before doing anything else, so the
    pending flow is never interleaved with another one.
    """

    def __init__(self):
        self._task: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, flow: Callable[[], Awaitable[T]]) -> T:
        if self.pending:
            raise SignInInProgressError()
        task = asyncio.ensure_future(flow())
        self._task = task
        try:
            return await task
        finally:
            if self._task is task:
                self._task = None
