"""Cooperative cancellation for generation runs."""

from __future__ import annotations

import asyncio

from .errors import RunCancelledError


class CancellationToken:
    """Signals an in-flight run to stop at its next suspension point."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "Run cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()


__all__ = ["CancellationToken"]
