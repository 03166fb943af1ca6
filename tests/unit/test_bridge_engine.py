from __future__ import annotations

import asyncio
import sys
import threading
import types

import pytest

from playground.bridge.bridge import ComputeBridge
from playground.bridge.engine import HandlerEngine, engine_factory_from_settings, load_handlers
from playground.core.errors import EngineInitError, TransportError
from playground.core.settings import Settings


def _handlers() -> dict:
    async def calculate(payload: dict) -> str:
        return f"overlay {payload['from']} -> {payload['to']}"

    def fail(payload: dict) -> str:
        raise ValueError("cannot parse document")

    def silent(payload: dict) -> str:
        raise RuntimeError()

    return {
        "CalculateOverlay": calculate,
        "ApplyOverlay": lambda p: '{"type": "success", "result": "%s"}' % p["source"],
        "GetInfo": fail,
        "QueryJSONPath": silent,
    }


def test_handler_engine_replies_with_tagged_messages() -> None:
    engine = HandlerEngine(_handlers())

    async def scenario() -> None:
        ok = await engine.send({"type": "CalculateOverlay", "payload": {"from": "a", "to": "b", "existing": ""}})
        assert ok == {"type": "CalculateOverlayResult", "payload": "overlay a -> b"}

        err = await engine.send({"type": "GetInfo", "payload": {"openapi": "x"}})
        assert err == {"type": "GetInfoError", "error": "cannot parse document"}

        blank = await engine.send({"type": "QueryJSONPath", "payload": {}})
        assert blank == {"type": "QueryJSONPathError", "error": "unknown error"}

        unknown = await engine.send({"type": "Explode", "payload": {}})
        assert unknown["type"] == "ExplodeError"
        assert "Unknown message type" in unknown["error"]

    asyncio.run(scenario())


def test_load_handlers_requires_every_kind(monkeypatch: pytest.MonkeyPatch) -> None:
    mod = types.ModuleType("playground_test_engine")
    mod.full = _handlers
    mod.partial = lambda: {"CalculateOverlay": lambda p: ""}
    monkeypatch.setitem(sys.modules, "playground_test_engine", mod)

    assert set(load_handlers("playground_test_engine:full")) == {
        "CalculateOverlay",
        "ApplyOverlay",
        "GetInfo",
        "QueryJSONPath",
    }
    with pytest.raises(RuntimeError, match="missing expected function"):
        load_handlers("playground_test_engine:partial")
    with pytest.raises(ValueError):
        load_handlers("playground_test_engine.full")


def test_bridge_over_handler_engine_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    mod = types.ModuleType("playground_test_engine")
    mod.full = _handlers
    monkeypatch.setitem(sys.modules, "playground_test_engine", mod)
    factory = engine_factory_from_settings(Settings(engine_handlers="playground_test_engine:full"))

    async def scenario() -> None:
        bridge = ComputeBridge(factory)
        assert await bridge.calculate_overlay("a", "b", supersede=True) == "overlay a -> b"
        await bridge.close()

    asyncio.run(scenario())


def test_unconfigured_engine_fails_initialization() -> None:
    factory = engine_factory_from_settings(Settings())

    async def scenario() -> None:
        bridge = ComputeBridge(factory)
        with pytest.raises(EngineInitError, match="no compute engine configured"):
            await bridge.get_info("doc")

    asyncio.run(scenario())


def test_blocking_handler_times_out_without_stalling_the_loop() -> None:
    release = threading.Event()

    def slow_info(payload: dict) -> str:
        release.wait(timeout=2.0)
        return "done"

    handlers = _handlers()
    handlers["GetInfo"] = slow_info
    handlers["QueryJSONPath"] = lambda p: "[]"

    async def scenario() -> None:
        ticks = 0
        stop = asyncio.Event()

        async def ticker() -> None:
            nonlocal ticks
            while not stop.is_set():
                ticks += 1
                await asyncio.sleep(0.005)

        tick_task = asyncio.ensure_future(ticker())
        bridge = ComputeBridge(lambda: HandlerEngine(handlers), call_timeout=0.05)
        try:
            with pytest.raises(TransportError, match="timed out"):
                await bridge.get_info("openapi: 3.1.0")
            assert ticks >= 3
            assert await bridge.query_jsonpath("a: 1", "$.a") == "[]"
        finally:
            release.set()
            stop.set()
            await tick_task
            await bridge.close()

    asyncio.run(scenario())
