from __future__ import annotations

import threading
from collections.abc import Callable

from lifecycle_kernel.config.models import TimeoutSettings
from lifecycle_kernel.kernel.errors import DurationParseError
from lifecycle_kernel.observability.logger import KernelLogger, get_logger
from lifecycle_kernel.timeout.duration import TimeoutDuration, TimeoutDurationParser
from lifecycle_kernel.timeout.invocation import ThreadMode

_CONFIG_PREFIX = "execution.timeout."
_UNSET = object()


class TimeoutConfiguration:
    # Lazily parsed per-phase defaults from `execution.timeout`; invalid values are logged and ignored.
    def __init__(self, settings: TimeoutSettings, logger: KernelLogger | None = None) -> None:
        self._settings = settings
        self._logger = logger or get_logger("lifecycle_kernel.timeout.configuration")
        self._parser = TimeoutDurationParser()
        self._cache: dict[str, TimeoutDuration | None] = {}
        self._thread_mode: object = _UNSET
        self._lock = threading.Lock()

    @property
    def mode(self) -> str:
        return self._settings.mode

    def default_test_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("test_method_default", self._default_testable_method_timeout)

    def default_before_all_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("before_all_method_default", self._default_lifecycle_method_timeout)

    def default_before_each_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("before_each_method_default", self._default_lifecycle_method_timeout)

    def default_after_each_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("after_each_method_default", self._default_lifecycle_method_timeout)

    def default_after_all_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("after_all_method_default", self._default_lifecycle_method_timeout)

    def _default_testable_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("testable_method_default", self._default_timeout)

    def _default_lifecycle_method_timeout(self) -> TimeoutDuration | None:
        return self._parse_or_default("lifecycle_method_default", self._default_timeout)

    def _default_timeout(self) -> TimeoutDuration | None:
        return self._parse("default")

    def _parse_or_default(
        self, field_name: str, fallback: Callable[[], TimeoutDuration | None]
    ) -> TimeoutDuration | None:
        parsed = self._parse(field_name)
        return parsed if parsed is not None else fallback()

    def _parse(self, field_name: str) -> TimeoutDuration | None:
        with self._lock:
            if field_name in self._cache:
                return self._cache[field_name]
        value = getattr(self._settings, field_name)
        parsed: TimeoutDuration | None = None
        if value is not None:
            try:
                parsed = self._parser.parse(value)
            except DurationParseError as exc:
                self._logger.warning(
                    f"Ignored invalid timeout '{value}' set via the '{_CONFIG_PREFIX}{field_name}' "
                    "configuration parameter.",
                    error=str(exc),
                )
        with self._lock:
            self._cache.setdefault(field_name, parsed)
            return self._cache[field_name]

    def default_thread_mode(self) -> ThreadMode | None:
        with self._lock:
            if self._thread_mode is not _UNSET:
                return self._thread_mode  # type: ignore[return-value]
        resolved = self._parse_thread_mode()
        with self._lock:
            if self._thread_mode is _UNSET:
                self._thread_mode = resolved
            return self._thread_mode  # type: ignore[return-value]

    def _parse_thread_mode(self) -> ThreadMode | None:
        value = self._settings.thread_mode_default
        if value is None:
            return None
        key = f"{_CONFIG_PREFIX}thread_mode_default"
        try:
            mode = ThreadMode.parse(value)
        except ValueError:
            self._logger.warning(f"Invalid timeout thread mode '{value}' set via the '{key}' configuration parameter.")
            return None
        if mode is ThreadMode.INFERRED:
            self._logger.warning(
                f"Invalid timeout thread mode '{value}', only same_thread and separate_thread "
                f"can be used as configuration parameter for {key}."
            )
            return None
        return mode
