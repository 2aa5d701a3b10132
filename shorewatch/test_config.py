"""
Test suite for configuration validation.
"""

import pytest

from shorewatch import config


def _expect_invalid(section, key, value):
    original = section[key]
    section[key] = value
    try:
        with pytest.raises(ValueError):
            config.validate_config()
    finally:
        section[key] = original


def test_default_config_is_valid():
    assert config.validate_config() is True
    assert config.CLASSIFICATION_CONFIG["WATER_THRESHOLD"] == 0.0
    assert config.COMPOSITE_CONFIG["YEAR_A"] < config.COMPOSITE_CONFIG["YEAR_B"]
    assert config.PERFORMANCE_CONFIG["KEEP_COMPOSITES"] is False


def test_default_aoi_is_a_closed_ring():
    ring = config.AOI_CONFIG["DEFAULT_AOI"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert len(ring) == 5


def test_inconsistent_values_are_rejected():
    _expect_invalid(config.COMPOSITE_CONFIG, "YEAR_A", 2020)
    _expect_invalid(config.COMPOSITE_CONFIG, "YEAR_A", 1972)
    _expect_invalid(config.COMPOSITE_CONFIG, "SCALE", 10.0)
    _expect_invalid(config.COMPOSITE_CONFIG, "TILE_SIZE", 0)
    _expect_invalid(config.CLASSIFICATION_CONFIG, "WATER_THRESHOLD", 1.5)
    _expect_invalid(config.REDUCTION_CONFIG, "VECTOR_MAX_PIXELS", 0)
    _expect_invalid(config.REDUCTION_CONFIG, "REGION_MAX_PIXELS", -1)
    _expect_invalid(config.STAC_CONFIG, "MAX_RETRIES", -1)
    _expect_invalid(config.STAC_CONFIG, "PAGE_SIZE", 0)
    _expect_invalid(config.STAC_CONFIG, "SIGN_EXPIRY_MARGIN_SECONDS", -1)


def test_tile_size_may_be_disabled():
    original = config.COMPOSITE_CONFIG["TILE_SIZE"]
    config.COMPOSITE_CONFIG["TILE_SIZE"] = None
    try:
        assert config.validate_config() is True
    finally:
        config.COMPOSITE_CONFIG["TILE_SIZE"] = original


def test_get_all_config_sections():
    sections = config.get_all_config()
    assert set(sections) == {"aoi", "composite", "classification", "reduction", "stac", "performance"}
