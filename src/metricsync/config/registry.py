"""Configuration Registry - Defines all configuration keys with tier classification.

This module provides the ConfigKey dataclass and REGISTRY dictionary that defines
all configuration options available in metricsync.

Two-Tier System:
- Static Config (tier="static"): Requires restart to apply changes
  Examples: fetcher base URL and timeout, log rendering format
- Dynamic Config (tier="dynamic"): Can be hot-reloaded without restart
  Examples: polling intervals, change threshold, retry policy, notification TTL
"""

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional


@dataclass
class ConfigKey:
    """Defines a single configuration key with validation and tier classification.

    Attributes:
        tier: "static" (restart required) or "dynamic" (hot-reloadable)
        value_type: Expected Python type (str, int, float, bool, list, dict)
        default: Default value if not specified in config files
        min_value: Minimum value for numeric types (optional)
        max_value: Maximum value for numeric types (optional)
        restart_required: Auto-derived from tier (True for static, False for dynamic)
        validator: Custom validation function (optional)
    """
    tier: Literal["static", "dynamic"]
    value_type: type
    default: Any
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
    restart_required: bool = False
    validator: Optional[Callable[[Any], bool]] = None

    def __post_init__(self):
        """Auto-derive restart_required from tier."""
        self.restart_required = (self.tier == "static")


# Configuration Registry
# =======================
# All configuration keys must be registered here with their tier classification.

REGISTRY: dict[str, ConfigKey] = {
    # ===== POLLING (Dynamic - Cadence and retry policy) =====
    "polling.enabled": ConfigKey(
        tier="dynamic",
        value_type=bool,
        default=True,
    ),
    "polling.interval_ms": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=30000,
        min_value=100,
        max_value=3_600_000,
    ),
    "polling.background_interval_ms": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=120000,
        min_value=100,
        max_value=86_400_000,
    ),
    "polling.change_threshold_percent": ConfigKey(
        tier="dynamic",
        value_type=float,
        default=20.0,
        min_value=0.0,
        max_value=10_000.0,
    ),
    "polling.max_retries": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=3,
        min_value=0,
        max_value=20,
    ),
    "polling.retry_delay_ms": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=1000,
        min_value=0,
        max_value=60_000,
    ),
    "polling.retry_delay_cap_ms": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=30000,
        min_value=0,
        max_value=300_000,
    ),

    # ===== NOTIFICATIONS (Dynamic - Store bounds) =====
    "notifications.max_entries": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=10,
        min_value=1,
        max_value=1000,
    ),
    "notifications.ttl_seconds": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=30,
        min_value=1,
        max_value=86_400,
    ),
    "notifications.sweep_interval_seconds": ConfigKey(
        tier="dynamic",
        value_type=int,
        default=5,
        min_value=1,
        max_value=3600,
    ),

    # ===== FETCHER (Static - read once when fetchers are built) =====
    "fetcher.base_url": ConfigKey(
        tier="static",
        value_type=str,
        default="http://localhost:3000/api",
        validator=lambda v: v.startswith(("http://", "https://")),
    ),
    "fetcher.timeout_seconds": ConfigKey(
        tier="static",
        value_type=float,
        default=10.0,
        min_value=0.1,
        max_value=300.0,
    ),

    # ===== LOGGING (Static format, Dynamic verbosity) =====
    "logging.json": ConfigKey(
        tier="static",
        value_type=bool,
        default=False,
    ),
    "logging.level": ConfigKey(
        tier="dynamic",
        value_type=str,
        default="INFO",
        validator=lambda v: v in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    ),
}


def get_config_key(key: str) -> ConfigKey:
    """Get configuration key definition from registry.

    Args:
        key: Configuration key path (e.g., "polling.interval_ms")

    Returns:
        ConfigKey definition

    Raises:
        KeyError: If key not found in registry
    """
    if key not in REGISTRY:
        raise KeyError(f"Configuration key '{key}' not found in registry")
    return REGISTRY[key]


def validate_config_value(key: str, value: Any) -> tuple[bool, Optional[str]]:
    """Validate a configuration value against its registered definition.

    Args:
        key: Configuration key path
        value: Value to validate

    Returns:
        Tuple of (is_valid, error_message)
        error_message is None if valid
    """
    try:
        config_key = get_config_key(key)
    except KeyError as e:
        return False, str(e)

    # TOML and env values may carry ints where floats are expected
    if config_key.value_type is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)

    # Type validation (bool is an int subclass and must not pass as a number)
    if isinstance(value, bool) and config_key.value_type is not bool:
        return False, f"Expected type {config_key.value_type.__name__}, got bool"
    if not isinstance(value, config_key.value_type):
        return False, f"Expected type {config_key.value_type.__name__}, got {type(value).__name__}"

    # Range validation for numeric types
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if config_key.min_value is not None and value < config_key.min_value:
            return False, f"Value {value} below minimum {config_key.min_value}"
        if config_key.max_value is not None and value > config_key.max_value:
            return False, f"Value {value} above maximum {config_key.max_value}"

    # Custom validator
    if config_key.validator is not None:
        try:
            if not config_key.validator(value):
                return False, f"Custom validation failed for value: {value}"
        except Exception as e:
            return False, f"Validator error: {str(e)}"

    return True, None


def get_default_values() -> dict[str, Any]:
    """Get default values for all configuration keys.

    Returns:
        Dictionary of key -> default_value
    """
    return {key: config_key.default for key, config_key in REGISTRY.items()}


def get_static_keys() -> list[str]:
    """Get list of all static configuration keys (restart required).

    Returns:
        List of static config key paths
    """
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "static"]


def get_dynamic_keys() -> list[str]:
    """Get list of all dynamic configuration keys (hot-reloadable).

    Returns:
        List of dynamic config key paths
    """
    return [key for key, config_key in REGISTRY.items() if config_key.tier == "dynamic"]
