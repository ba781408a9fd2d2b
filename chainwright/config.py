"""Run configuration: defaults < Chainfile.json < command line < advanced options."""

from __future__ import annotations

import copy
import glob
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable

from chainwright.registry import Registry

log = logging.getLogger(__name__)

DEFAULT_FILENAME = "Chainfile.json"

DEFAULTS: dict[str, Any] = {
    "reporter": ["console"],
    "driver": ["websocket"],
    "browser": ["attached"],
    "viewport": {"width": 1280, "height": 1024},
    "waitTimeout": 5000,
    "doneTimeout": 10.0,
    "host": {"port": 9020},
}


def deep_merge(base: dict[str, Any], *layers: dict[str, Any] | None) -> dict[str, Any]:
    """Merge dicts recursively; later layers win, lists are replaced."""
    merged = copy.deepcopy(base)
    for layer in layers:
        for key, value in (layer or {}).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = deep_merge(merged[key], value)
            else:
                merged[key] = copy.deepcopy(value)
    return merged


def expand_tests(patterns: Iterable[str]) -> list[str]:
    """Glob-expand test patterns, keeping first occurrence order."""
    found: list[str] = []
    for pattern in patterns:
        for match in sorted(glob.glob(pattern)):
            if match not in found:
                found.append(match)
    return found


class Config:
    """Resolved configuration for one run.

    ``get(key)`` falls back to the process environment so suites can read
    values like credentials without putting them in the config file.
    """

    def __init__(
        self,
        defaults: dict[str, Any] | None = None,
        opts: dict[str, Any] | None = None,
        advanced: dict[str, Any] | None = None,
    ):
        opts = dict(opts or {})
        self.advanced = dict(advanced or {})
        self.path = self.resolve_path(opts.pop("config", None))
        self.config = self.load(DEFAULTS if defaults is None else defaults, opts)

    @staticmethod
    def resolve_path(pathname: str | None) -> Path | None:
        path = Path(pathname or DEFAULT_FILENAME)
        if path.exists():
            return path.resolve()
        if pathname:
            log.warning("Config file %s not found, using defaults", pathname)
        return None

    def load(self, defaults: dict[str, Any], opts: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.path is not None and self.advanced.get("chainfile", True) is not False:
            data = self.load_file(self.path)

        if not opts.get("tests"):
            opts.pop("tests", None)

        tests = data.get("tests")
        if isinstance(tests, list) and tests:
            data["tests"] = expand_tests(tests)

        return deep_merge(defaults, data, {k: v for k, v in opts.items() if v is not None}, self.advanced)

    @staticmethod
    def load_file(path: Path) -> dict[str, Any]:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top-level JSON value must be an object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.config:
            return self.config[key]
        return os.environ.get(key, default)

    def set(self, key: str, value: Any) -> Config:
        self.config[key] = value
        return self

    def browser_config(self, name: str) -> dict[str, Any]:
        """The ``browsers`` entry for ``name``; a list of dicts is accepted too."""
        browsers = self.get("browsers") or {}
        if isinstance(browsers, list):
            browsers = browsers[0] if browsers and isinstance(browsers[0], dict) else {}
        entry = browsers.get(name) if isinstance(browsers, dict) else None
        return dict(entry) if isinstance(entry, dict) else {}

    def verify_reporters(self, reporters: Iterable[str], registry: Registry) -> list[str]:
        return self._verify(reporters, registry)

    def verify_drivers(self, drivers: Iterable[str], registry: Registry) -> list[str]:
        return self._verify(drivers, registry)

    def _verify(self, names: Iterable[str], registry: Registry) -> list[str]:
        verified = []
        for name in names:
            if name in registry:
                verified.append(name)
            else:
                log.warning("Unknown %s %r ignored", registry.kind, name)
        return verified
