"""Tests for chainwright.drivers.websocket."""

import asyncio
import json

import pytest

from chainwright.drivers.websocket import DEFAULT_WS_URL, MAX_RECV_ATTEMPTS, WebSocketDriver
from chainwright.events import EventEmitter
from chainwright.unit import Unit

from conftest import Recorder


class FakeWebSocket:
    """Simulates a websockets connection for testing.

    ``responses`` are replayed in order; ``answer`` builds a reply from the
    last sent command instead, for when the ids are not known up front.
    """

    def __init__(self, responses=None, answer=None):
        self.sent = []
        self._responses = list(responses or [])
        self._answer = answer
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        if self._answer is not None:
            return json.dumps(self._answer(self.sent[-1]))
        if self._responses:
            resp = self._responses.pop(0)
            return json.dumps(resp) if isinstance(resp, dict) else resp
        raise asyncio.TimeoutError("No more responses")

    async def close(self):
        self.closed = True


def connect_to(ws):
    calls = []

    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        return ws

    connect.calls = calls
    return connect


async def started_driver(ws, **kwargs):
    driver = WebSocketDriver(EventEmitter(), EventEmitter(), connect=connect_to(ws), browser_name="chrome", **kwargs)
    await driver.start()
    return driver


# ── Connection ──────────────────────────────────────────────────


class TestConnection:
    @pytest.mark.asyncio
    async def test_start_connects_and_signals_ready(self, monkeypatch):
        monkeypatch.delenv("CHAINWRIGHT_WS_URL", raising=False)
        ws = FakeWebSocket()
        connect = connect_to(ws)
        driver = WebSocketDriver(EventEmitter(), connect=connect, browser_name="chrome")
        ready = []
        driver.events.on("driver:ready:websocket:chrome", lambda: ready.append(True))
        await driver.start()
        assert connect.calls[0][0] == DEFAULT_WS_URL
        assert ready == [True]

    def test_url_from_config_then_env(self, monkeypatch):
        monkeypatch.setenv("CHAINWRIGHT_WS_URL", "ws://env:1")
        assert WebSocketDriver(config={"ws_url": "ws://cfg:2"}).ws_url == "ws://cfg:2"
        assert WebSocketDriver(config={}).ws_url == "ws://env:1"

    def test_unknown_command(self):
        with pytest.raises(AttributeError):
            WebSocketDriver().teleport

    @pytest.mark.asyncio
    async def test_run_before_start(self):
        driver = WebSocketDriver()
        driver.title("c1")
        with pytest.raises(RuntimeError, match="before start"):
            await driver.run()

    @pytest.mark.asyncio
    async def test_kill_closes_socket(self):
        ws = FakeWebSocket()
        driver = await started_driver(ws)
        await driver.kill()
        await driver.kill()
        assert ws.closed


# ── Run ─────────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_commands_sent_in_order_and_results_emitted(self):
        ws = FakeWebSocket([{"id": "c1", "result": None}, {"id": "c2", "result": "Home"}])
        driver = await started_driver(ws)
        messages = Recorder(driver.events)
        driver.open("http://example.com", "c1")
        driver.title("c2")
        await driver.run()

        assert ws.sent == [
            {"id": "c1", "method": "open", "params": {"args": ["http://example.com"]}},
            {"id": "c2", "method": "title", "params": {"args": []}},
        ]
        assert messages.named("driver:message") == [
            {"key": "open", "hash": "c1", "value": None},
            {"key": "title", "hash": "c2", "value": "Home"},
            {"key": "run.complete", "value": None},
        ]
        assert driver.commands == []

    @pytest.mark.asyncio
    async def test_stale_replies_are_skipped(self):
        ws = FakeWebSocket([{"id": "old", "result": "x"}, {"id": "c1", "result": "fresh"}])
        driver = await started_driver(ws)
        messages = Recorder(driver.events)
        driver.url("c1")
        await driver.run()
        assert messages.named("driver:message")[0]["value"] == "fresh"

    @pytest.mark.asyncio
    async def test_error_reply_becomes_warning(self):
        ws = FakeWebSocket([{"id": "c1", "error": {"message": "no such element"}}])
        driver = await started_driver(ws)
        warnings = Recorder(driver.reporter)
        messages = Recorder(driver.events)
        driver.click("#gone", "c1")
        await driver.run()
        assert warnings.named("warning") == ["click: no such element"]
        assert messages.named("driver:message")[0] == {"key": "click", "hash": "c1", "value": None}
        assert messages.named("driver:webdriver:response")[0]["method"] == "click"

    @pytest.mark.asyncio
    async def test_noop_answered_locally(self):
        ws = FakeWebSocket()
        driver = await started_driver(ws)
        messages = Recorder(driver.events)
        driver.noop({"a": 1}, "c1")
        await driver.run()
        assert ws.sent == []
        assert messages.named("driver:message")[0] == {"key": "noop", "hash": "c1", "value": {"a": 1}}

    @pytest.mark.asyncio
    async def test_gives_up_after_unrelated_replies(self):
        ws = FakeWebSocket(answer=lambda command: {"id": "someone-else", "result": None})
        driver = await started_driver(ws)
        driver.title("c1")
        with pytest.raises(RuntimeError, match=str(MAX_RECV_ATTEMPTS)):
            await driver.run()


# ── With a unit ─────────────────────────────────────────────────


class TestWithUnit:
    @pytest.mark.asyncio
    async def test_unit_assertions_resolve_over_socket(self, reporter, recorder):
        def answer(command):
            result = {"title": "Home", "exists": True}.get(command["method"])
            return {"id": command["id"], "result": result}

        ws = FakeWebSocket(answer=answer)
        driver = await started_driver(ws)
        test = Unit("socket", EventEmitter(), driver, reporter)
        test.open("http://example.com").assert_.title("Home")
        test.assert_.exists("#main")
        await test.done()

        assert [c["method"] for c in ws.sent] == ["open", "title", "exists"]
        assert [a["success"] for a in recorder.named("report:assertion")] == [True, True]
        assert recorder.named("report:test:finished")[0]["status"] is True
