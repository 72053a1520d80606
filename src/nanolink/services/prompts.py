"""User prompt capability: yes/no confirmation and free-text input."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Protocol, TypeVar

import structlog
from rich.console import Console
from rich.prompt import Confirm, Prompt

from nanolink.errors import PromptTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class UserPrompt(Protocol):
    async def confirm(self, message: str) -> bool:
        ...

    async def ask_text(self, message: str, *, default: str | None = None) -> str | None:
        ...


class ConsolePrompt:
    """Asks on the terminal through rich, optionally bounded by a timeout.

    The blocking read runs in a worker thread. On timeout the read is
    abandoned and :class:`PromptTimeoutError` is raised; the stray thread
    finishes with the next line of input.
    """

    def __init__(self, console: Console | None = None, *, timeout: float | None = None) -> None:
        self._console = console or Console()
        self._timeout = timeout

    async def confirm(self, message: str) -> bool:
        return await self._bounded(
            asyncio.to_thread(Confirm.ask, message, console=self._console, default=False)
        )

    async def ask_text(self, message: str, *, default: str | None = None) -> str | None:
        answer = await self._bounded(
            asyncio.to_thread(
                Prompt.ask, message, console=self._console, default=default or ""
            )
        )
        answer = (answer or "").strip()
        return answer or None

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("prompt.timeout", timeout=self._timeout)
            raise PromptTimeoutError(
                f"No answer within {self._timeout:g} seconds"
            ) from exc


class ScriptedPrompt:
    """Replays fixed answers and records every question asked."""

    def __init__(self, confirm: bool = False, texts: list[str] | None = None) -> None:
        self._confirm = confirm
        self._texts = list(texts or [])
        self.asked: list[str] = []

    async def confirm(self, message: str) -> bool:
        self.asked.append(message)
        return self._confirm

    async def ask_text(self, message: str, *, default: str | None = None) -> str | None:
        self.asked.append(message)
        if self._texts:
            return self._texts.pop(0)
        return default
