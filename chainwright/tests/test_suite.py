"""Tests for chainwright.suite."""

import asyncio
import textwrap

import pytest

from chainwright.errors import CommandDispatchError
from chainwright.suite import Suite


class TestSuiteExecution:
    @pytest.mark.asyncio
    async def test_tests_run_in_order(self, driver, reporter, recorder):
        tests = {
            "first": lambda test: test.open("/1").done(),
            "second": lambda test: test.open("/2").done(),
        }
        await Suite(tests, driver, reporter, name="ordered").run()
        assert driver.calls == [("open", ("/1",)), ("open", ("/2",))]
        assert [t["name"] for t in recorder.named("report:test:finished")] == ["first", "second"]
        assert recorder.named("report:testsuite:started") == ["ordered"]
        assert recorder.named("report:testsuite:finished") == ["ordered"]

    @pytest.mark.asyncio
    async def test_timed_out_test_does_not_block_next(self, driver, reporter, recorder):
        tests = {
            "t1": lambda test: test.open("/t1"),
            "t2": lambda test: test.open("/t2").done(),
        }
        await asyncio.wait_for(Suite(tests, driver, reporter, done_timeout=0.05).run(), timeout=2)
        assert recorder.named("warning") == ["done() not called before timeout!"]
        assert driver.calls == [("open", ("/t1",)), ("open", ("/t2",))]
        assert [t["name"] for t in recorder.named("report:test:finished")] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_driver_run_raising_does_not_block_suite(self, driver, reporter, recorder):
        def broken_run():
            raise RuntimeError("session lost")

        driver.run = broken_run
        tests = {
            "t1": lambda test: test.open("/t1").done(),
            "t2": lambda test: test.open("/t2").done(),
        }
        await asyncio.wait_for(Suite(tests, driver, reporter).run(), timeout=2)
        assert [t["name"] for t in recorder.named("report:test:finished")] == ["t1", "t2"]
        assert recorder.named("error") == ["session lost", "session lost"]

    @pytest.mark.asyncio
    async def test_hooks(self, driver, reporter):
        calls = []

        def before_each(callback):
            calls.append("beforeEach")
            callback()

        async def after_each():
            calls.append("afterEach")

        tests = {
            "options": {
                "setup": lambda: calls.append("setup"),
                "beforeEach": before_each,
                "after_each": after_each,
                "teardown": lambda: calls.append("teardown"),
            },
            "a": lambda test: (calls.append("a"), test.done()),
            "b": lambda test: (calls.append("b"), test.done()),
        }
        await Suite(tests, driver, reporter).run()
        assert calls == [
            "setup",
            "beforeEach", "a", "afterEach",
            "beforeEach", "b", "afterEach",
            "teardown",
        ]

    @pytest.mark.asyncio
    async def test_async_test_function(self, driver, reporter):
        async def test_async(test):
            await asyncio.sleep(0)
            test.open("/async").done()

        await Suite({"test_async": test_async}, driver, reporter).run()
        assert driver.calls == [("open", ("/async",))]

    @pytest.mark.asyncio
    async def test_missing_test_warns(self, driver, reporter, recorder):
        await Suite({"ghost": None}, driver, reporter).run()
        assert recorder.named("warning") == ['Test "ghost" does not exist! Skipping.']
        assert len(recorder.named("report:test:finished")) == 1

    @pytest.mark.asyncio
    async def test_raising_test_counts_failure(self, driver, reporter, recorder):
        def broken(test):
            raise ValueError("bad fixture")

        await Suite({"broken": broken}, driver, reporter).run()
        assert recorder.named("error") == ['Test "broken" raised ValueError: bad fixture']
        finished = recorder.named("report:test:finished")[0]
        assert finished["failedAssertions"] == 1
        assert finished["status"] is False

    @pytest.mark.asyncio
    async def test_empty_suite(self, driver, reporter, recorder):
        await Suite({}, driver, reporter, name="empty").run()
        assert recorder.names == ["report:testsuite:started", "report:testsuite:finished"]

    @pytest.mark.asyncio
    async def test_dispatch_error_is_fatal(self, make_driver, reporter):
        driver = make_driver(missing={"mouse_event"})
        suite = Suite({"t": lambda test: test.mouse_event("hover").done()}, driver, reporter)
        with pytest.raises(CommandDispatchError):
            await suite.run()


class TestSuiteLoading:
    @pytest.mark.asyncio
    async def test_missing_file(self, driver, reporter, recorder):
        suite = Suite("nope/does_not_exist.py", driver, reporter)
        assert suite.error == 'Suite "nope/does_not_exist.py" does not exist. Skipping!'
        await suite.run()
        assert recorder.events == [
            ("report:testsuite:started", (None,)),
            ("warning", (suite.error,)),
            ("report:testsuite:finished", (None,)),
        ]

    @pytest.mark.asyncio
    async def test_file_with_module_functions(self, tmp_path, driver, reporter, recorder):
        path = tmp_path / "login_test.py"
        path.write_text(
            textwrap.dedent(
                """
                name = "Login"

                def helper(test):
                    raise AssertionError("not a test")

                def test_opens(test):
                    test.open("/login").done()

                def test_submits(test):
                    test.submit("#login").done()
                """
            )
        )
        suite = Suite(str(path), driver, reporter)
        assert suite.error is None
        assert list(suite.tests) == ["test_opens", "test_submits"]
        await suite.run()
        assert recorder.named("report:testsuite:started") == ["Login"]
        assert driver.methods == ["open", "submit"]

    def test_file_with_tests_dict(self, tmp_path, driver, reporter):
        path = tmp_path / "dict_suite.py"
        path.write_text(
            textwrap.dedent(
                """
                options = {"setup": lambda: None}
                tests = {"Page has title": lambda test: test.assert_.title("x").done()}
                """
            )
        )
        suite = Suite(path, driver, reporter)
        assert list(suite.tests) == ["Page has title"]
        assert "setup" in suite.options

    def test_import_error_is_recorded(self, tmp_path, driver, reporter):
        path = tmp_path / "broken_suite.py"
        path.write_text("raise RuntimeError('kaboom')\n")
        suite = Suite(path, driver, reporter)
        assert "RuntimeError: kaboom" in suite.error
        assert "Skipping!" in suite.error
