from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering

from lifecycle_kernel.kernel.errors import DurationParseError, PreconditionViolationError


@total_ordering
class TimeUnit(Enum):
    # Ordered from finest to coarsest; value is the unit length in nanoseconds.
    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60 * 1_000_000_000
    HOURS = 60 * 60 * 1_000_000_000
    DAYS = 24 * 60 * 60 * 1_000_000_000

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TimeUnit):
            return NotImplemented
        return self.value < other.value

    @property
    def plural(self) -> str:
        return self.name.lower()

    @property
    def singular(self) -> str:
        return self.name.lower()[:-1]


@dataclass(frozen=True, slots=True)
class TimeoutDuration:
    # Positive amount of one TimeUnit; equality is structural (42 s != 42000 ms).
    amount: int
    unit: TimeUnit

    def __post_init__(self) -> None:
        if not isinstance(self.amount, int) or isinstance(self.amount, bool):
            raise PreconditionViolationError("timeout duration amount must be an int")
        if self.amount <= 0:
            raise PreconditionViolationError("timeout duration must be a positive number")
        if not isinstance(self.unit, TimeUnit):
            raise PreconditionViolationError("timeout duration unit must be a TimeUnit")

    @property
    def nanoseconds(self) -> int:
        return self.amount * self.unit.value

    def to_seconds(self) -> float:
        return self.nanoseconds / TimeUnit.SECONDS.value

    def __str__(self) -> str:
        name = self.unit.singular if self.amount == 1 else self.unit.plural
        return f"{self.amount} {name}"


_UNITS: dict[str, TimeUnit] = {}
for _unit, _tokens in (
    (TimeUnit.NANOSECONDS, ("ns",)),
    (TimeUnit.MICROSECONDS, ("us", "μs", "µs")),
    (TimeUnit.MILLISECONDS, ("ms",)),
    (TimeUnit.SECONDS, ("s", "sec")),
    (TimeUnit.MINUTES, ("m", "min")),
    (TimeUnit.HOURS, ("h",)),
    (TimeUnit.DAYS, ("d",)),
):
    for _token in (*_tokens, _unit.singular, _unit.plural):
        _UNITS[_token] = _unit

_PATTERN = re.compile(r"([0-9]+)\s*(\w*)")


class TimeoutDurationParser:
    # Strict parser for "42", "42s", "42 ms", "42MS", "1 µs", "5 minutes".
    def parse(self, text: str) -> TimeoutDuration:
        if not isinstance(text, str):
            raise PreconditionViolationError("duration text must be a string")
        candidate = text.strip()
        match = _PATTERN.fullmatch(candidate)
        if match is None:
            raise DurationParseError(f"Cannot parse timeout duration '{text}'")
        digits, unit_text = match.groups()
        if len(digits) > 1 and digits.startswith("0"):
            raise DurationParseError(f"Cannot parse timeout duration '{text}': leading zero")
        unit = TimeUnit.SECONDS
        if unit_text:
            resolved = _UNITS.get(unit_text.lower())
            if resolved is None:
                raise DurationParseError(f"Cannot parse timeout duration '{text}': unknown unit '{unit_text}'")
            unit = resolved
        amount = int(digits)
        if amount == 0:
            raise DurationParseError(f"Cannot parse timeout duration '{text}': amount must be positive")
        return TimeoutDuration(amount, unit)


def parse_duration(text: str) -> TimeoutDuration:
    return TimeoutDurationParser().parse(text)
