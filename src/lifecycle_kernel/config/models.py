from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Config models map the YAML `execution` and `logging` sections to typed structures.
# Timeout texts and the random seed stay raw strings; consumers parse them lazily and
# log-and-ignore invalid values instead of failing the whole run.


def _scalar_to_text(value: Any) -> Any:
    # YAML turns `5` or `42` into ints; keep the textual form for lazy parsing.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class TimeoutSettings(BaseModel):
    # Per-phase default timeouts (duration text) and the default thread mode.
    model_config = ConfigDict(extra="forbid")
    mode: str = "enabled"
    default: str | None = None
    testable_method_default: str | None = None
    test_method_default: str | None = None
    lifecycle_method_default: str | None = None
    before_all_method_default: str | None = None
    before_each_method_default: str | None = None
    after_each_method_default: str | None = None
    after_all_method_default: str | None = None
    thread_mode_default: str | None = None

    @field_validator(
        "default",
        "testable_method_default",
        "test_method_default",
        "lifecycle_method_default",
        "before_all_method_default",
        "before_each_method_default",
        "after_each_method_default",
        "after_all_method_default",
        mode="before",
    )
    @classmethod
    def _durations_as_text(cls, value: Any) -> Any:
        return _scalar_to_text(value)


class OrderSettings(BaseModel):
    # Orderer ids for method and class sibling groups plus the optional random seed.
    model_config = ConfigDict(extra="forbid")
    method_default: str | None = None
    class_default: str | None = None
    random_seed: str | None = None

    @field_validator("random_seed", mode="before")
    @classmethod
    def _seed_as_text(cls, value: Any) -> Any:
        return _scalar_to_text(value)


class ExecutionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    instance_lifecycle_default: Literal["per_test", "per_container"] = "per_test"
    timeout: TimeoutSettings = Field(default_factory=TimeoutSettings)
    order: OrderSettings = Field(default_factory=OrderSettings)


class LoggingSettings(BaseModel):
    # Structured log sink selection; jsonl requires a target path.
    model_config = ConfigDict(extra="forbid")
    sink: Literal["none", "stdout", "jsonl", "memory"] = "none"
    path: str | None = None
    level: Literal["debug", "info", "warning", "error"] = "info"

    @model_validator(mode="after")
    def _require_path_for_jsonl(self) -> LoggingSettings:
        if self.sink == "jsonl" and not self.path:
            raise ValueError("logging.path is required when logging.sink is 'jsonl'")
        return self


class KernelConfig(BaseModel):
    # Root config for one engine run; every section is optional.
    model_config = ConfigDict(extra="forbid")
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
