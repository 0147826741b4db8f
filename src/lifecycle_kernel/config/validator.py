from __future__ import annotations

from pydantic import ValidationError

from lifecycle_kernel.config.models import KernelConfig
from lifecycle_kernel.kernel.errors import ConfigurationError


class ConfigError(ConfigurationError):
    # Raised for invalid kernel config files (fail fast).
    pass


def validate_kernel_config(raw: object) -> KernelConfig:
    # Validate the raw YAML mapping against KernelConfig; pydantic errors surface as ConfigError.
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    try:
        return KernelConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid kernel config: {exc}") from exc
