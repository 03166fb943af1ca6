"""Compute bridge: one ordered stream of engine calls, one call in flight.

Edit sources submit requests independently; the bridge queues them FIFO and
dispatches them one at a time. A request submitted with `supersede=True`
pre-empts every request queued ahead of it that has not been dispatched yet:
those are rejected with `CancellationError` the next time the bridge is about
to dispatch. The request on the wire is never cancelled.

All queue bookkeeping runs on the event loop thread without awaiting, so no
lock is needed around it. The only suspension points are the engine call and
a pending engine initialization.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from playground.contracts.messages import (
    ApplyOverlay,
    ApplyOverlayOutcome,
    CalculateOverlay,
    EngineRequest,
    GetInfo,
    QueryJSONPath,
    parse_apply_outcome,
    to_wire,
)
from playground.contracts.validation import validate_response_dict
from playground.core.errors import CancellationError, EngineInitError, TransportError
from playground.core.ids import new_request_id

from .engine import ComputeEngine, EngineFactory

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    request: EngineRequest
    supersede: bool
    future: "asyncio.Future[str]"
    request_id: str = field(default_factory=new_request_id)

    @property
    def kind(self) -> str:
        return self.request.kind


class ComputeBridge:
    """Serializes calls into a single lazily created compute engine.

    Construct one per process and hand it to every caller by reference.
    """

    def __init__(self, engine_factory: EngineFactory, *, call_timeout: Optional[float] = None) -> None:
        self._engine_factory = engine_factory
        self._call_timeout = call_timeout

        self._queue: Deque[PendingRequest] = deque()
        self._in_flight: Optional[PendingRequest] = None
        self._drain_task: Optional[asyncio.Task[None]] = None

        self._engine: Optional[ComputeEngine] = None
        self._init_task: Optional[asyncio.Task[ComputeEngine]] = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    def submit(self, request: EngineRequest, *, supersede: bool = False) -> "asyncio.Future[str]":
        """Enqueue `request` and return its completion handle immediately.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        pending = PendingRequest(request=request, supersede=supersede, future=loop.create_future())
        self._queue.append(pending)
        logger.debug("enqueue request=%s kind=%s supersede=%s depth=%d", pending.request_id, pending.kind, supersede, len(self._queue))

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain())
        return pending.future

    async def ensure_engine(self) -> ComputeEngine:
        """Return the engine, creating it on first use.

        Concurrent callers share one initialization. A failed initialization
        is forgotten so the next call tries again.
        """
        if self._engine is not None:
            return self._engine
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._initialize())
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except EngineInitError:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _initialize(self) -> ComputeEngine:
        logger.info("Initializing compute engine")
        try:
            engine = self._engine_factory()
            if inspect.isawaitable(engine):
                engine = await engine
        except Exception as e:
            logger.warning("Compute engine initialization failed: %s", e)
            raise EngineInitError(f"engine initialization failed: {e}") from e
        self._engine = engine
        logger.info("Compute engine ready")
        return engine

    async def _drain(self) -> None:
        while self._queue:
            try:
                engine = await self.ensure_engine()
            except EngineInitError as e:
                self._fail_queued(e)
                return

            self._cancel_superseded()
            pending = self._next_live()
            if pending is None:
                continue

            self._in_flight = pending
            try:
                result, error = await self._call(engine, pending)
            finally:
                self._in_flight = None

            self._cancel_superseded()
            self._settle(pending, result, error)

    async def _call(self, engine: ComputeEngine, pending: PendingRequest) -> tuple[Optional[str], Optional[Exception]]:
        logger.debug("dispatch request=%s kind=%s", pending.request_id, pending.kind)
        try:
            message = to_wire(pending.request)
            if self._call_timeout is not None:
                response = await asyncio.wait_for(engine.send(message), timeout=self._call_timeout)
            else:
                response = await engine.send(message)
        except asyncio.TimeoutError:
            return None, TransportError(f"engine call timed out after {self._call_timeout}s")
        except Exception as e:
            return None, TransportError(str(e) or "unknown error")

        try:
            ok = validate_response_dict(pending.kind, response)
        except ValueError as e:
            return None, TransportError(f"malformed engine response: {e}")
        if ok:
            return response["payload"], None
        return None, TransportError(response["error"] or "unknown error")

    def _cancel_superseded(self) -> None:
        # Everything ahead of the last supersede request is stale.
        last = -1
        for i, p in enumerate(self._queue):
            if p.supersede:
                last = i
        if last <= 0:
            return
        victims = [self._queue.popleft() for _ in range(last)]
        for p in victims:
            logger.debug("superseded request=%s kind=%s", p.request_id, p.kind)
            if not p.future.done():
                p.future.set_exception(CancellationError())

    def _next_live(self) -> Optional[PendingRequest]:
        while self._queue:
            p = self._queue.popleft()
            # The caller may have given up on it already.
            if not p.future.done():
                return p
        return None

    def _settle(self, pending: PendingRequest, result: Optional[str], error: Optional[Exception]) -> None:
        if pending.future.done():
            return
        if error is not None:
            logger.info("request=%s kind=%s failed: %s", pending.request_id, pending.kind, error)
            pending.future.set_exception(error)
        else:
            pending.future.set_result(result if result is not None else "")

    def _fail_queued(self, error: Exception) -> None:
        while self._queue:
            p = self._queue.popleft()
            if not p.future.done():
                p.future.set_exception(error)

    async def close(self) -> None:
        """Reject everything still waiting and release the engine."""
        task, self._drain_task = self._drain_task, None
        in_flight = self._in_flight
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if in_flight is not None and not in_flight.future.done():
            in_flight.future.set_exception(CancellationError("bridge closed"))
        self._in_flight = None
        self._fail_queued(CancellationError("bridge closed"))

        init, self._init_task = self._init_task, None
        if init is not None and not init.done():
            # An engine that finishes starting after close would never be released.
            init.cancel()
            try:
                await init
            except (asyncio.CancelledError, EngineInitError):
                pass

        engine, self._engine = self._engine, None
        aclose = getattr(engine, "aclose", None)
        if aclose is not None:
            await aclose()

    # Typed operations.

    async def calculate_overlay(self, from_doc: str, to_doc: str, existing: str = "", *, supersede: bool = False) -> str:
        return await self.submit(CalculateOverlay(from_doc=from_doc, to_doc=to_doc, existing=existing), supersede=supersede)

    async def apply_overlay(self, source: str, overlay: str, *, supersede: bool = False) -> ApplyOverlayOutcome:
        raw = await self.submit(ApplyOverlay(source=source, overlay=overlay), supersede=supersede)
        try:
            return parse_apply_outcome(raw)
        except ValueError as e:
            raise TransportError(str(e)) from e

    async def query_jsonpath(self, source: str, jsonpath: str, *, supersede: bool = False) -> str:
        return await self.submit(QueryJSONPath(source=source, jsonpath=jsonpath), supersede=supersede)

    async def get_info(self, document: str, *, supersede: bool = False) -> str:
        return await self.submit(GetInfo(document=document), supersede=supersede)
