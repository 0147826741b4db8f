from __future__ import annotations

from lifecycle_kernel.config.loader import load_kernel_config, load_yaml_config
from lifecycle_kernel.config.models import (
    ExecutionSettings,
    KernelConfig,
    LoggingSettings,
    OrderSettings,
    TimeoutSettings,
)
from lifecycle_kernel.config.validator import ConfigError, validate_kernel_config

__all__ = [
    "ConfigError",
    "ExecutionSettings",
    "KernelConfig",
    "LoggingSettings",
    "OrderSettings",
    "TimeoutSettings",
    "load_kernel_config",
    "load_yaml_config",
    "validate_kernel_config",
]
