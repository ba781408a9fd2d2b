"""Assertions: commands whose results are compared against expected values."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from chainwright.correlation import ResultMessage

if TYPE_CHECKING:
    from chainwright.unit import Unit

log = logging.getLogger(__name__)

Comparison = Callable[..., bool]

# Without an expected value these only cache their result for a helper
CACHE_ONLY_KEYS = frozenset(
    {
        "title",
        "width",
        "height",
        "url",
        "text",
        "attribute",
        "number_of_elements",
        "number_of_visible_elements",
    }
)

_FLOAT_PREFIX = re.compile(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


# ── Comparisons ─────────────────────────────────────────────────


def parse_float(value: Any) -> float:
    """Leading-number parse: ``"12.5px"`` -> 12.5, garbage -> nan."""
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    match = _FLOAT_PREFIX.match(str(value))
    return float(match.group(0)) if match else math.nan


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def loose_equals(actual: Any, expected: Any) -> bool:
    """Coercive equality: ``"4"`` equals ``4`` and ``"true"`` equals ``True``."""
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    if isinstance(actual, bool) or isinstance(expected, bool):
        return str(actual).lower() == str(expected).lower()
    if _is_number(actual) and isinstance(expected, str) or _is_number(expected) and isinstance(actual, str):
        try:
            return float(actual) == float(expected)
        except ValueError:
            return False
    return str(actual) == str(expected)


def loose_unequals(actual: Any, expected: Any) -> bool:
    return not loose_equals(actual, expected)


def greater_than(actual: Any, expected: Any, parse_floats: bool = False) -> bool:
    if parse_floats:
        actual, expected = parse_float(actual), parse_float(expected)
    try:
        return actual > expected
    except TypeError:
        return False


def greater_than_equal(actual: Any, expected: Any, parse_floats: bool = False) -> bool:
    if parse_floats:
        actual, expected = parse_float(actual), parse_float(expected)
    try:
        return actual >= expected
    except TypeError:
        return False


def lower_than(actual: Any, expected: Any, parse_floats: bool = False) -> bool:
    if parse_floats:
        actual, expected = parse_float(actual), parse_float(expected)
    try:
        return actual < expected
    except TypeError:
        return False


def lower_than_equal(actual: Any, expected: Any, parse_floats: bool = False) -> bool:
    if parse_floats:
        actual, expected = parse_float(actual), parse_float(expected)
    try:
        return actual <= expected
    except TypeError:
        return False


def between(actual: Any, bounds: tuple[Any, Any]) -> bool:
    """Inclusive numeric range check."""
    low, high = bounds
    try:
        return low <= actual <= high
    except TypeError:
        return False


def contains(actual: Any, expected: Any) -> bool:
    try:
        return expected in actual
    except TypeError:
        return False


def not_contains(actual: Any, expected: Any) -> bool:
    try:
        return expected not in actual
    except TypeError:
        return False


def matches(actual: Any, pattern: str | re.Pattern[str]) -> bool:
    if actual is None:
        return False
    return re.search(pattern, str(actual)) is not None


def equals_case_insensitive(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str) or not isinstance(expected, str):
        return False
    return actual.lower() == expected.lower()


def truthy(actual: Any, *_: Any) -> bool:
    return actual == "true" or actual is True


def falsy(actual: Any, *_: Any) -> bool:
    return actual == "false" or actual is False


def image_equal(actual: Any, *_: Any) -> bool:
    return actual == "equal"


# ── Records & handles ───────────────────────────────────────────


@dataclass
class AssertionRecord:
    """The pending comparison of one queued assertion."""

    key: str
    type: str
    test_fn: Comparison
    hash: str
    opts: dict[str, Any]
    data: ResultMessage | None = None
    proceeded: set[tuple[str, str]] = field(default_factory=set)
    helpers: list[Callable[[ResultMessage], None]] = field(default_factory=list)

    def on_result(self, callback: Callable[[ResultMessage], None]) -> None:
        """Run ``callback`` with the result, now if it already arrived."""
        if self.data is not None:
            callback(self.data)
        else:
            self.helpers.append(callback)

    def resolve(self, message: ResultMessage) -> None:
        self.data = message
        for helper in self.helpers:
            helper(message)


class AssertionHandle:
    """Returned by every assertion; refines it with a second comparison.

    ``test.assert_.text("#a", "X").not_("Y")`` reports two assertions, both
    against the single cached result of the ``text`` command. Any other
    attribute is looked up on the current chain receiver, so the fluent
    chain continues naturally.
    """

    def __init__(self, assertions: Assertions, record: AssertionRecord):
        self._assertions = assertions
        self.record = record

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._assertions.receiver, name)

    def _helper(self, name: str, comparison: Callable[[Any], bool], expected: Any, message: str | None) -> AssertionHandle:
        record = self.record
        unit = self._assertions.unit

        def refine(result: ResultMessage) -> None:
            marker = (record.hash, name)
            if marker in record.proceeded:
                return
            record.proceeded.add(marker)
            success = comparison(result.value)
            unit.reporter.emit(
                "report:assertion",
                {
                    "success": success,
                    "expected": expected,
                    "value": result.value,
                    "message": message,
                    "type": record.type,
                },
            )
            unit.increment_expectations()
            if not success:
                unit.increment_failed_assertions()

        record.on_result(refine)
        return self

    def is_(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("is", lambda value: loose_equals(value, expected), expected, message)

    def not_(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("not", lambda value: not loose_equals(value, expected), expected, message)

    def between(self, low: Any, high: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("between", lambda value: between(value, (low, high)), [low, high], message)

    def gt(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("gt", lambda value: greater_than(value, expected), expected, message)

    def gte(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("gte", lambda value: greater_than_equal(value, expected), expected, message)

    def lt(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("lt", lambda value: lower_than(value, expected), expected, message)

    def lte(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("lte", lambda value: lower_than_equal(value, expected), expected, message)

    def contain(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("contain", lambda value: contains(value, expected), expected, message)

    def not_contain(self, expected: Any, message: str | None = None) -> AssertionHandle:
        return self._helper("notContain", lambda value: not_contains(value, expected), expected, message)

    def match(self, pattern: str | re.Pattern[str], message: str | None = None) -> AssertionHandle:
        return self._helper("match", lambda value: matches(value, pattern), pattern, message)

    def equals_case_insensitive(self, expected: str, message: str | None = None) -> AssertionHandle:
        return self._helper(
            "equalsCaseInsensitive",
            lambda value: equals_case_insensitive(value, expected),
            expected,
            message,
        )


# ── Assertion namespace ─────────────────────────────────────────


class Assertions:
    """``test.assert_``: queues assertion commands for a test unit."""

    def __init__(self, unit: Unit):
        self.unit = unit
        self.chaining = False

    @property
    def receiver(self) -> Any:
        """Where the chain continues after an assertion."""
        return self if self.chaining else self.unit

    @property
    def assert_(self) -> Assertions:
        return self

    def chain(self) -> Assertions:
        self.unit.last_chain.append("chaining")
        self.chaining = True
        return self

    def end(self) -> Unit:
        last = self.unit.last_chain.pop() if self.unit.last_chain else None
        if last == "chaining":
            self.chaining = False
        if last == "querying":
            self.unit.querying = False
        return self.unit

    def query(self, selector: str) -> Assertions:
        self.unit.actions.query(selector)
        return self

    S = query

    def done(self) -> Any:
        return self.unit.done()

    def _assertion(
        self,
        key: str,
        type_: str,
        test_fn: Comparison,
        args: list[Any],
        opts: dict[str, Any],
        method: str | None = None,
    ) -> AssertionHandle:
        self.unit.screenshot_params = None if key != "imagecompare" else self.unit.screenshot_params
        holder: dict[str, AssertionRecord] = {}

        def callback(message: ResultMessage) -> None:
            record = holder["record"]
            record.data = message
            if opts.get("expected") is None and key in CACHE_ONLY_KEYS:
                record.resolve(message)
                return
            expected = opts.get("expected")
            if callable(expected):
                expected = opts["expected"] = expected()
            if opts.get("parse_floats"):
                success = test_fn(message.value, expected, True)
            else:
                success = test_fn(message.value, expected)
            operator = opts.get("comparison_operator")
            self.unit.reporter.emit(
                "report:assertion",
                {
                    "success": success,
                    "expected": f"{operator}{expected}" if operator else expected,
                    "value": message.value,
                    "message": opts.get("message"),
                    "type": type_,
                },
            )
            self.unit.increment_expectations()
            if not success:
                self.unit.increment_failed_assertions()
            record.resolve(message)

        command = self.unit.queue.enqueue(method or key, args, callback)
        record = AssertionRecord(
            key=key,
            type=type_,
            test_fn=test_fn,
            hash=command.correlation_id,
            opts=opts,
        )
        holder["record"] = record
        self.unit.last_assertion = record
        return AssertionHandle(self, record)

    def _shift(self, *args: Any) -> tuple[Any, ...]:
        """Inside a query scope the selector argument is implied."""
        if self.unit.querying:
            return (self.unit.selector, *args[:-1])
        return args

    # ── Element state ───────────────────────────────────────────

    def exists(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "exists", "exists", truthy, [selector], {"selector": selector, "message": message}
        )

    def doesnt_exist(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "exists", "!exists", falsy, [selector], {"selector": selector, "message": message}
        )

    def visible(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "visible", "visible", truthy, [selector], {"selector": selector, "message": message}
        )

    def not_visible(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "visible", "!visible", falsy, [selector], {"selector": selector, "message": message}
        )

    def selected(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "selected",
            "selected",
            loose_equals,
            [selector, True],
            {"expected": True, "selector": selector, "message": message},
        )

    def not_selected(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "selected",
            "selected",
            loose_equals,
            [selector, False],
            {"expected": False, "selector": selector, "message": message},
        )

    def enabled(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "enabled",
            "enabled",
            loose_equals,
            [selector, True],
            {"expected": True, "selector": selector, "message": message},
        )

    def disabled(self, selector: str | None = None, message: str | None = None) -> AssertionHandle:
        selector, message = self._shift(selector, message)
        return self._assertion(
            "enabled",
            "enabled",
            loose_equals,
            [selector, False],
            {"expected": False, "selector": selector, "message": message},
        )

    # ── Element values ──────────────────────────────────────────

    def number_of_elements(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "number_of_elements",
            "numberOfElements",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def number_of_visible_elements(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "number_of_visible_elements",
            "numberOfVisibleElements",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def val(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "val",
            "val",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def css(self, selector: Any, property: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        """CSS property check; ``">10px"`` / ``"<10px"`` compare numerically."""
        selector, property, expected, message = self._shift(selector, property, expected, message)
        test_fn: Comparison = loose_equals
        operator = ""
        if isinstance(expected, str) and expected[:1] == ">":
            test_fn, expected, operator = greater_than, expected[1:], ">"
        elif isinstance(expected, str) and expected[:1] == "<":
            test_fn, expected, operator = lower_than, expected[1:], "<"
        return self._assertion(
            "css",
            "css",
            test_fn,
            [selector, property, expected],
            {
                "comparison_operator": operator,
                "expected": expected,
                "selector": selector,
                "property": property,
                "message": message,
                "parse_floats": bool(operator),
            },
        )

    def width(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "width",
            "width",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def height(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "height",
            "height",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def text(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "text",
            "text",
            loose_equals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def doesnt_have_text(self, selector: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, expected, message = self._shift(selector, expected, message)
        return self._assertion(
            "text",
            "!text",
            loose_unequals,
            [selector, expected],
            {"expected": expected, "selector": selector, "message": message},
        )

    def attr(self, selector: Any, attribute: Any = None, expected: Any = None, message: str | None = None) -> AssertionHandle:
        selector, attribute, expected, message = self._shift(selector, attribute, expected, message)
        return self._assertion(
            "attribute",
            "attribute",
            loose_equals,
            [selector, attribute, expected],
            {"expected": expected, "selector": selector, "attribute": attribute, "message": message},
        )

    # ── Page ────────────────────────────────────────────────────

    def title(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "title", "title", loose_equals, [expected], {"expected": expected, "message": message}
        )

    def doesnt_have_title(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "title", "!title", loose_unequals, [expected], {"expected": expected, "message": message}
        )

    def url(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "url", "url", loose_equals, [expected], {"expected": expected, "message": message}
        )

    def doesnt_have_url(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "url", "!url", loose_unequals, [expected], {"expected": expected, "message": message}
        )

    def dialog_text(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "alert_text", "alertText", loose_equals, [expected], {"expected": expected, "message": message}
        )

    def dialog_doesnt_have_text(self, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "alert_text", "!alertText", loose_unequals, [expected], {"expected": expected, "message": message}
        )

    def cookie(self, name: str, expected: Any = None, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "cookie",
            "cookie",
            loose_equals,
            [name, expected],
            {"expected": expected, "name": name, "message": message},
        )

    def http_status(self, status: int, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "http_status", "httpStatus", loose_equals, [status], {"expected": status, "message": message}
        )

    def resource_exists(self, url: str, message: str | None = None) -> AssertionHandle:
        return self._assertion(
            "resource_exists", "resourceExists", truthy, [url], {"url": url, "message": message}
        )

    def evaluate(self, script: str, *args: Any) -> AssertionHandle:
        """Run ``script`` in the browser; a truthy result passes."""
        call_args = [self.unit.context_vars, *args]
        return self._assertion(
            "evaluate", "evaluate", truthy, [script, call_args], {"script": script, "args": call_args}
        )

    def screenshot_is_equal_to(self, expected: str, makediff: bool | str = True, message: str | None = None) -> Any:
        """Compare the previous ``screenshot`` with a stored reference image."""
        params = self.unit.screenshot_params
        if not params:
            self.unit.reporter.emit(
                "error", "Assert screenshot_is_equal_to can follow only after screenshot action!"
            )
            return self.receiver
        if isinstance(makediff, str):
            message, makediff = makediff, True
        return self._assertion(
            "imagecompare",
            "compare with etalon",
            image_equal,
            [params, expected, makediff],
            {"expected": expected, "message": message, "comparison_operator": "Screenshot is equal to "},
        )
