"""Engine transport: the single send/receive channel the bridge dispatches on.

The compute engine itself is opaque. Anything that answers
`{"type": kind, "payload": {...}}` with `{"type": kind + "Result", "payload": str}`
or `{"type": kind + "Error", "error": str}` can sit behind the bridge.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Union

from playground.contracts.messages import ALL_KINDS, error_tag, result_tag
from playground.core.settings import Settings

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Union[str, Awaitable[str]]]
EngineFactory = Callable[[], Union["ComputeEngine", Awaitable["ComputeEngine"]]]


class ComputeEngine(Protocol):
    async def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HandlerEngine:
    """In-process engine that routes each tagged message to a handler.

    Handler failures never escape `send`; they become `<kind>Error` replies,
    the same way an isolated worker reports them back over its channel.
    Plain (non-async) handlers run in a worker thread. A handler that outlives
    the bridge call timeout keeps its thread until it returns.
    """

    def __init__(self, handlers: Mapping[str, Handler]) -> None:
        self._handlers = dict(handlers)

    async def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        kind = str(message.get("type", ""))
        payload = message.get("payload") or {}
        try:
            handler = self._handlers.get(kind)
            if handler is None:
                raise LookupError(f"Unknown message type: {kind}")
            if inspect.iscoroutinefunction(handler):
                result = await handler(payload)
            else:
                # Blocking handlers run off the loop so call timeouts can fire.
                result = await asyncio.to_thread(handler, payload)
            if inspect.isawaitable(result):
                result = await result
            return {"type": result_tag(kind), "payload": result}
        except Exception as e:  # noqa: BLE001
            return {"type": error_tag(kind), "error": str(e) or "unknown error"}

    async def aclose(self) -> None:
        self._handlers.clear()


def load_handlers(dotted_path: str) -> Dict[str, Handler]:
    """Load a handler table given a dotted path like module.sub:factory.

    The callable is invoked with no arguments and must return a mapping that
    covers every operation kind.
    """
    if ":" not in dotted_path:
        raise ValueError("engine handlers must be in form module.sub:callable")
    mod_name, func_name = dotted_path.split(":", 1)
    mod = importlib.import_module(mod_name)
    fn = getattr(mod, func_name)
    if not callable(fn):
        raise TypeError(f"{dotted_path} is not callable")
    handlers = dict(fn())
    for kind in ALL_KINDS:
        if not callable(handlers.get(kind)):
            raise RuntimeError(f"missing expected function {kind}")
    return handlers


def engine_factory_from_settings(settings: Settings) -> EngineFactory:
    """Build the lazy factory the bridge calls on first use."""

    dotted: Optional[str] = settings.engine_handlers

    def factory() -> ComputeEngine:
        if not dotted:
            raise RuntimeError("no compute engine configured (engine.handlers)")
        logger.info("Loading compute engine handlers from %s", dotted)
        return HandlerEngine(load_handlers(dotted))

    return factory
