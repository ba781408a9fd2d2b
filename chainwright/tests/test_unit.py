"""Tests for chainwright.unit and chainwright.actions."""

import asyncio

import pytest

from chainwright.events import EventEmitter
from chainwright.unit import SessionGate, Unit


def make_unit(driver, reporter, name="unit", config=None, **kwargs):
    return Unit(name, EventEmitter(), driver, reporter, config, **kwargs)


# ── Lifecycle ───────────────────────────────────────────────────


class TestUnitLifecycle:
    @pytest.mark.asyncio
    async def test_done_runs_driver_and_finishes(self, driver, reporter, recorder):
        test = make_unit(driver, reporter, name="first")
        test.open("http://example.com").click("#go")
        await test.done()
        assert driver.methods == ["open", "click"]
        assert driver.runs == 1
        assert recorder.names.index("report:test:started") < recorder.names.index("report:test:finished")
        finished = recorder.named("report:test:finished")[0]
        assert finished["name"] == "first"
        assert finished["id"] == test.uid
        assert finished["status"] is True

    @pytest.mark.asyncio
    async def test_done_is_idempotent(self, driver, reporter):
        test = make_unit(driver, reporter)
        first = test.done()
        assert test.done() is first
        await first
        assert driver.runs == 1

    @pytest.mark.asyncio
    async def test_suite_emitter_gets_finished_event(self, driver, reporter):
        events = EventEmitter()
        seen = []
        test = Unit("t", events, driver, reporter)
        events.on(f"test:{test.uid}:finished", lambda name, unit: seen.append((name, unit)))
        await test.done()
        assert seen == [("test:finished", test)]

    @pytest.mark.asyncio
    async def test_expect_mismatch_fails_status(self, driver, reporter, recorder):
        test = make_unit(driver, reporter)
        test.expect(2).assert_.exists("#a")
        await test.done()
        assert test.check_assertions() is True
        assert test.check_expectations() is False
        assert recorder.named("report:test:finished")[0]["status"] is False

    @pytest.mark.asyncio
    async def test_timeout_forces_done(self, driver, reporter, recorder):
        test = make_unit(driver, reporter, name="slow", done_timeout=0.05)
        test.click("#a")
        await asyncio.sleep(0.1)
        assert test.task is not None
        await test.task
        assert recorder.named("warning") == ["done() not called before timeout!"]
        assert driver.methods == ["click"]

    @pytest.mark.asyncio
    async def test_gate_orders_tests_on_one_session(self, driver, reporter, recorder):
        gate = SessionGate()
        first = make_unit(driver, reporter, name="one", gate=gate)
        second = make_unit(driver, reporter, name="two", gate=gate)
        first.promise(asyncio.sleep(0.02)).open("/one")
        second.open("/two")
        first.done()
        await second.done()
        assert driver.calls == [("open", ("/one",)), ("open", ("/two",))]
        started = recorder.named("report:test:started")
        assert [s["name"] for s in started] == ["one", "two"]
        assert gate.previous is second.task

    @pytest.mark.asyncio
    async def test_dispatch_error_is_recorded(self, make_driver, reporter, recorder):
        driver = make_driver(missing={"click"})
        test = make_unit(driver, reporter)
        test.click("#a").open("/x")
        await test.done()
        assert driver.methods == ["open"]
        assert [e.method for e in test.queue.dispatch_errors] == ["click"]
        assert recorder.named("error") == ["Driver has no method 'click'"]

    @pytest.mark.asyncio
    async def test_failing_async_driver_run_finishes_test(self, driver, reporter, recorder):
        async def broken_run():
            raise RuntimeError("socket gone")

        driver.run = broken_run
        test = make_unit(driver, reporter)
        await test.done()
        assert recorder.named("error") == ["socket gone"]
        assert len(recorder.named("report:test:finished")) == 1

    @pytest.mark.asyncio
    async def test_failing_sync_driver_run_finishes_test(self, driver, reporter, recorder):
        def broken_run():
            raise RuntimeError("session lost")

        driver.run = broken_run
        test = make_unit(driver, reporter)
        test.open("/")
        await asyncio.wait_for(test.done(), timeout=2)
        assert recorder.named("error") == ["session lost"]
        assert recorder.named("report:test:finished")[0]["status"] is True


# ── Chain helpers ───────────────────────────────────────────────


class TestChainHelpers:
    @pytest.mark.asyncio
    async def test_and_then_gets_the_unit(self, driver, reporter):
        test = make_unit(driver, reporter)
        seen = []
        test.open("/").and_then(lambda t: seen.append(t.context_vars.get("k")))
        test.data("k", "v")
        await test.done()
        assert seen == ["v"]

    @pytest.mark.asyncio
    async def test_node_callback_error_counts_failure(self, driver, reporter, recorder):
        test = make_unit(driver, reporter)
        test.node(lambda t, callback: callback("boom"))
        await test.done()
        assert test.failed_assertions == 1
        assert recorder.named("error") == ["boom"]

    @pytest.mark.asyncio
    async def test_data_roundtrip(self, driver, reporter):
        test = make_unit(driver, reporter)
        assert test.data("a", 1) is test
        assert test.data("a") == 1
        assert test.data("missing") is None
        await test.done()

    @pytest.mark.asyncio
    async def test_unknown_attribute(self, driver, reporter):
        test = make_unit(driver, reporter)
        with pytest.raises(AttributeError):
            test.not_an_action
        await test.done()


# ── Actions ─────────────────────────────────────────────────────


class TestActions:
    @pytest.mark.asyncio
    async def test_actions_report_in_order(self, driver, reporter, recorder):
        test = make_unit(driver, reporter)
        test.open("http://x").type("#q", "hello").submit("#f").reload().back().forward()
        await test.done()
        assert driver.methods == ["open", "type", "submit", "refresh", "back", "forward"]
        assert [a["type"] for a in recorder.named("report:action")] == driver.methods

    @pytest.mark.asyncio
    async def test_open_prefixes_base_url(self, driver, reporter):
        test = make_unit(driver, reporter, config={"baseUrl": "http://example.com/"})
        test.open("/login").open("http://other/")
        await test.done()
        assert driver.calls == [("open", ("http://example.com/login",)), ("open", ("http://other/",))]

    @pytest.mark.asyncio
    async def test_query_scope_for_actions(self, driver, reporter):
        test = make_unit(driver, reporter)
        test.query("#f").type("abc").click().wait_for_element().end().click("#b")
        await test.done()
        assert driver.calls == [
            ("type", ("#f", "abc")),
            ("click", ("#f",)),
            ("wait_for_element", ("#f", 5000)),
            ("click", ("#b",)),
        ]

    @pytest.mark.asyncio
    async def test_wait_defaults(self, driver, reporter):
        test = make_unit(driver, reporter, wait_timeout=750)
        test.wait().wait_for_element("#a").wait_until_visible("#b", 100)
        await test.done()
        assert driver.calls == [
            ("wait", (5000,)),
            ("wait_for_element", ("#a", 750)),
            ("wait_until_visible", ("#b", 100)),
        ]

    @pytest.mark.asyncio
    async def test_button_click_names(self, driver, reporter):
        test = make_unit(driver, reporter)
        test.button_click().button_click("right").button_click(1)
        await test.done()
        assert [args for _, args in driver.calls] == [(0,), (2,), (1,)]

    @pytest.mark.asyncio
    async def test_close_switches_to_parent_window(self, driver, reporter):
        test = make_unit(driver, reporter)
        test.close()
        await test.done()
        assert driver.calls == [("close", ()), ("to_window", (None,))]

    @pytest.mark.asyncio
    async def test_execute_merges_context_and_reports_checks(self, make_driver, reporter, recorder):
        driver = make_driver(
            values={
                "execute": {
                    "context": {"token": "abc"},
                    "tests": [{"ok": True, "message": "in page"}, {"ok": False, "message": "broken"}],
                }
            }
        )
        test = make_unit(driver, reporter)
        test.execute("doStuff()")
        await test.done()
        assert test.context_vars == {"token": "abc"}
        reports = recorder.named("report:assertion")
        assert [(r["success"], r["message"], r["type"]) for r in reports] == [
            (True, "in page", "OK"),
            (False, "broken", "OK"),
        ]
        assert test.runned_expectations == 2
        assert test.failed_assertions == 1

    @pytest.mark.asyncio
    async def test_log_dom_extracts_selector_html(self, make_driver, reporter, recorder):
        driver = make_driver(values={"source": "<html><body><div id='a'><b>x</b></div></body></html>"})
        test = make_unit(driver, reporter)
        test.log.dom("#a").log.dom("#missing")
        await test.done()
        assert recorder.named("report:log:user") == ["DOM: #a <b>x</b>", "DOM: #missing  Not found"]

    @pytest.mark.asyncio
    async def test_log_message_calls_callables(self, driver, reporter, recorder):
        test = make_unit(driver, reporter)
        test.data("n", 3)
        test.log.message("plain").log.message(lambda t: f"n={t.data('n')}")
        await test.done()
        assert recorder.named("report:log:user") == ["MESSAGE: plain", "MESSAGE: n=3"]

    @pytest.mark.asyncio
    async def test_screenshot_report_carries_command_id(self, driver, reporter, recorder):
        test = make_unit(driver, reporter)
        test.screenshot("page.png")
        await test.done()
        shot = recorder.named("report:screenshot")[0]
        assert shot["pathname"] == "page.png"
        assert recorder.named("report:action")[0]["uuid"] == shot["uuid"]
