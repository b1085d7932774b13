"""
Hook dispatcher coordinating lifecycle events.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

HookHandler = Callable[..., None]

BEFORE_CREATE = "before_create"
AFTER_CREATE = "after_create"
BEFORE_UPDATE = "before_update"
AFTER_UPDATE = "after_update"
BEFORE_DELETE = "before_delete"
AFTER_DELETE = "after_delete"
AFTER_COMMIT = "after_commit"

EVENTS = frozenset(
    {
        BEFORE_CREATE,
        AFTER_CREATE,
        BEFORE_UPDATE,
        AFTER_UPDATE,
        BEFORE_DELETE,
        AFTER_DELETE,
        AFTER_COMMIT,
    }
)


class HookDispatcher:
    """
    Maintains global and per-model hook handlers for one engine.

    Handlers are called as ``handler(model_name, **context)``; ``model_name``
    is ``None`` for ``after_commit``.
    """

    def __init__(self) -> None:
        self._global_handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        self._model_handlers: Dict[str, Dict[str, List[HookHandler]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def register(self, event: str, handler: HookHandler, *, model: Optional[str] = None) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown hook event '{event}'")
        if model:
            self._model_handlers[model][event].append(handler)
        else:
            self._global_handlers[event].append(handler)

    def on(self, event: str, *, model: Optional[str] = None) -> Callable[[HookHandler], HookHandler]:
        def decorator(handler: HookHandler) -> HookHandler:
            self.register(event, handler, model=model)
            return handler

        return decorator

    def fire(self, event: str, model: Optional[str], **context: Any) -> None:
        handlers = list(self._global_handlers.get(event, []))
        if model:
            handlers.extend(self._model_handlers.get(model, {}).get(event, []))
        for handler in handlers:
            handler(model, **context)

    def clear(self) -> None:
        self._global_handlers.clear()
        self._model_handlers.clear()
