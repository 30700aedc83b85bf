"""Token de cancelamento cooperativo de uma run.

O iniciador chama `cancel()`; o Orchestrator observa o token em cada ciclo
e corre cada chamada suspensa (gerador, execução) contra `wait()`.
"""

from __future__ import annotations

import asyncio
from typing import Optional


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
