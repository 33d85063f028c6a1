"""Key events to engine operations.

Every accepted input becomes exactly one engine coroutine, scheduled as a
task in arrival order. The engine's layout lock then applies them one after
another, so the dispatcher itself stays synchronous and never blocks the UI
loop.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from engine import DIRECTIONS, MindmapEngine

ACTIVATE_KEYS = frozenset({"enter", "space"})


def key_name_and_modifiers(key_value: str) -> tuple[str, set[str]]:
    parts = key_value.split("+")
    key_name = parts[-1].lower()
    modifiers = {part.lower() for part in parts[:-1] if part}
    return key_name, modifiers


class InputDispatcher:
    def __init__(
        self,
        engine_provider: Callable[[], Optional[MindmapEngine]],
        *,
        on_error: Callable[[str, BaseException], None] | None = None,
    ) -> None:
        self._engine_provider = engine_provider
        self._on_error = on_error
        self._pending: list[asyncio.Task[None]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def require_engine(self) -> MindmapEngine:
        engine = self._engine_provider()
        if engine is None:
            raise RuntimeError("No mind map loaded")
        return engine

    def dispatch(self, key: str, *, should_handle: bool = True) -> bool:
        """Forward ``key`` to the engine. Returns ``True`` if it was consumed."""
        if not should_handle:
            return False
        key_name, modifiers = key_name_and_modifiers(key)
        if modifiers:
            return False
        if key_name in DIRECTIONS:
            engine = self.require_engine()
            self.submit(engine.navigate(key_name), label=f"move {key_name}")
            return True
        if key_name in ACTIVATE_KEYS:
            engine = self.require_engine()
            self.submit(engine.toggle_focused(), label="toggle")
            return True
        return False

    def submit(self, operation: Awaitable[None], *, label: str = "operation") -> asyncio.Task[None]:
        task: asyncio.Task[None] = asyncio.ensure_future(operation)
        self._pending.append(task)

        def _on_done(completed: asyncio.Task[None]) -> None:
            if completed in self._pending:
                self._pending.remove(completed)
            if completed.cancelled():
                return
            exc = completed.exception()
            if exc is not None and self._on_error is not None:
                self._on_error(label, exc)

        task.add_done_callback(_on_done)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled operation has finished."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
