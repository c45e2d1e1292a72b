"""Unit tests for configuration registry."""

import pytest

from src.metricsync.config.registry import (
    ConfigKey,
    REGISTRY,
    get_config_key,
    validate_config_value,
    get_default_values,
    get_static_keys,
    get_dynamic_keys,
)


class TestConfigKey:
    """Test ConfigKey dataclass."""

    def test_config_key_static_restart_required(self):
        """Static config keys should have restart_required=True."""
        key = ConfigKey(tier="static", value_type=str, default="test")
        assert key.restart_required is True

    def test_config_key_dynamic_no_restart(self):
        """Dynamic config keys should have restart_required=False."""
        key = ConfigKey(tier="dynamic", value_type=int, default=42)
        assert key.restart_required is False

    def test_config_key_with_bounds(self):
        """Config keys can have min/max value bounds."""
        key = ConfigKey(tier="dynamic", value_type=int, default=60, min_value=10, max_value=300)
        assert key.min_value == 10
        assert key.max_value == 300


class TestRegistry:
    """Test configuration registry."""

    def test_registry_has_required_keys(self):
        """Registry should contain essential config keys."""
        required_keys = [
            "polling.interval_ms",
            "polling.background_interval_ms",
            "polling.change_threshold_percent",
            "polling.max_retries",
            "polling.retry_delay_ms",
            "notifications.max_entries",
            "notifications.ttl_seconds",
            "fetcher.base_url",
            "logging.level",
        ]
        for key in required_keys:
            assert key in REGISTRY

    def test_all_keys_have_valid_tiers(self):
        """All registry keys must have tier 'static' or 'dynamic'."""
        for key, config_key in REGISTRY.items():
            assert config_key.tier in ("static", "dynamic"), f"Invalid tier for {key}"

    def test_all_defaults_pass_validation(self):
        """Every registered default must satisfy its own rules."""
        for key, config_key in REGISTRY.items():
            is_valid, error = validate_config_value(key, config_key.default)
            assert is_valid, f"Default for {key} is invalid: {error}"

    def test_restart_required_matches_tier(self):
        """restart_required should match tier classification."""
        for key, config_key in REGISTRY.items():
            assert config_key.restart_required is (config_key.tier == "static"), key


class TestGetConfigKey:
    """Test get_config_key function."""

    def test_get_existing_key(self):
        """Should return ConfigKey for existing keys."""
        key = get_config_key("fetcher.base_url")
        assert isinstance(key, ConfigKey)
        assert key.tier == "static"

    def test_get_nonexistent_key_raises_error(self):
        """Should raise KeyError for non-existent keys."""
        with pytest.raises(KeyError, match="not found in registry"):
            get_config_key("nonexistent.key")


class TestValidateConfigValue:
    """Test validate_config_value function."""

    def test_validate_correct_type(self):
        is_valid, error = validate_config_value("logging.level", "INFO")
        assert is_valid is True
        assert error is None

    def test_validate_wrong_type(self):
        """Should reject value with wrong type."""
        is_valid, error = validate_config_value("polling.interval_ms", "not_an_int")
        assert is_valid is False
        assert "Expected type int" in error

    def test_validate_bool_is_not_a_number(self):
        is_valid, error = validate_config_value("polling.max_retries", False)
        assert is_valid is False
        assert "got bool" in error

    def test_validate_int_accepted_for_float(self):
        """Integer values are accepted for float keys."""
        is_valid, error = validate_config_value("polling.change_threshold_percent", 25)
        assert is_valid is True
        assert error is None

    def test_validate_below_minimum(self):
        is_valid, error = validate_config_value("polling.interval_ms", 5)
        assert is_valid is False
        assert "below minimum" in error

    def test_validate_above_maximum(self):
        is_valid, error = validate_config_value("notifications.max_entries", 5000)
        assert is_valid is False
        assert "above maximum" in error

    def test_validate_within_range(self):
        is_valid, error = validate_config_value("polling.max_retries", 5)
        assert is_valid is True
        assert error is None

    def test_validate_custom_validator_fail(self):
        """Should reject with custom validator (failing case)."""
        is_valid, error = validate_config_value("logging.level", "INVALID_LEVEL")
        assert is_valid is False
        assert "Custom validation failed" in error

    def test_validate_base_url_scheme(self):
        assert validate_config_value("fetcher.base_url", "https://api.example.com")[0] is True
        assert validate_config_value("fetcher.base_url", "file:///etc/passwd")[0] is False

    def test_validate_nonexistent_key(self):
        """Should reject validation for nonexistent key."""
        is_valid, error = validate_config_value("nonexistent.key", "value")
        assert is_valid is False
        assert "not found in registry" in error


class TestHelperFunctions:
    """Test helper functions."""

    def test_get_default_values(self):
        """Should return dict of all default values."""
        defaults = get_default_values()
        assert len(defaults) == len(REGISTRY)
        assert defaults["polling.interval_ms"] == 30000
        assert defaults["polling.background_interval_ms"] == 120000
        assert defaults["polling.change_threshold_percent"] == 20.0
        assert defaults["notifications.max_entries"] == 10
        assert defaults["notifications.ttl_seconds"] == 30

    def test_static_keys(self):
        """Fetcher settings and log format require a restart."""
        assert sorted(get_static_keys()) == ["fetcher.base_url", "fetcher.timeout_seconds", "logging.json"]

    def test_static_and_dynamic_partition(self):
        """Static and dynamic keys should partition the registry."""
        static = set(get_static_keys())
        dynamic = set(get_dynamic_keys())
        assert not static & dynamic
        assert static | dynamic == set(REGISTRY)

    def test_polling_keys_are_hot_reloadable(self):
        for key in REGISTRY:
            if key.startswith(("polling.", "notifications.")):
                assert REGISTRY[key].tier == "dynamic", key

