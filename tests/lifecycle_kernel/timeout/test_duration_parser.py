from __future__ import annotations

import pytest

from lifecycle_kernel.kernel.errors import DurationParseError, PreconditionViolationError
from lifecycle_kernel.timeout.duration import TimeoutDuration, TimeoutDurationParser, TimeUnit, parse_duration


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("42", TimeoutDuration(42, TimeUnit.SECONDS)),
        ("42s", TimeoutDuration(42, TimeUnit.SECONDS)),
        ("42 ms", TimeoutDuration(42, TimeUnit.MILLISECONDS)),
        ("42MS", TimeoutDuration(42, TimeUnit.MILLISECONDS)),
        ("1 µs", TimeoutDuration(1, TimeUnit.MICROSECONDS)),
        ("7ns", TimeoutDuration(7, TimeUnit.NANOSECONDS)),
        ("5 minutes", TimeoutDuration(5, TimeUnit.MINUTES)),
        ("2h", TimeoutDuration(2, TimeUnit.HOURS)),
        ("1 day", TimeoutDuration(1, TimeUnit.DAYS)),
        ("  3m  ", TimeoutDuration(3, TimeUnit.MINUTES)),
    ],
)
def test_parses_amount_and_unit(text: str, expected: TimeoutDuration) -> None:
    assert TimeoutDurationParser().parse(text) == expected


@pytest.mark.parametrize("text", ["01", "-1", "1.5", "abc", "0", "5 fortnights", "", "42 s s"])
def test_rejects_malformed_text(text: str) -> None:
    # Leading zeros, signs, fractions, zero amounts and unknown units are all rejected.
    with pytest.raises(DurationParseError):
        parse_duration(text)


def test_non_string_input_is_a_precondition_violation() -> None:
    with pytest.raises(PreconditionViolationError):
        TimeoutDurationParser().parse(42)  # type: ignore[arg-type]


def test_rendering_uses_singular_for_one() -> None:
    assert str(TimeoutDuration(1, TimeUnit.SECONDS)) == "1 second"
    assert str(TimeoutDuration(10, TimeUnit.MILLISECONDS)) == "10 milliseconds"
    assert str(parse_duration("42")) == "42 seconds"


def test_rendered_text_parses_back() -> None:
    duration = TimeoutDuration(250, TimeUnit.MICROSECONDS)
    assert parse_duration(str(duration)) == duration


def test_equality_is_structural() -> None:
    # 1 second and 1000 milliseconds are different durations.
    assert TimeoutDuration(1, TimeUnit.SECONDS) != TimeoutDuration(1000, TimeUnit.MILLISECONDS)
    assert TimeoutDuration(1, TimeUnit.SECONDS).nanoseconds == TimeoutDuration(1000, TimeUnit.MILLISECONDS).nanoseconds


def test_duration_requires_a_positive_amount() -> None:
    with pytest.raises(PreconditionViolationError):
        TimeoutDuration(0, TimeUnit.SECONDS)
    with pytest.raises(PreconditionViolationError):
        TimeoutDuration(-5, TimeUnit.SECONDS)


def test_units_are_ordered_finest_first() -> None:
    assert TimeUnit.NANOSECONDS < TimeUnit.MILLISECONDS < TimeUnit.DAYS
    assert TimeoutDuration(2, TimeUnit.MILLISECONDS).to_seconds() == pytest.approx(0.002)
