"""
Configuration Module for ShoreWatch

Centralized configuration for the study area, compositing, classification,
reduction limits and imagery access.
"""

from __future__ import annotations
from typing import Dict, Any


# Study Area Configuration
AOI_CONFIG: Dict[str, Any] = {
    # Default coastal study area (South Florida / Keys), EPSG:4326
    "DEFAULT_AOI": {
        "type": "Polygon",
        "coordinates": [[
            [-82.9, 27.5],
            [-82.9, 24.5],
            [-79.8, 24.5],
            [-79.8, 27.5],
            [-82.9, 27.5],
        ]],
    },
}


# Compositing Configuration
COMPOSITE_CONFIG: Dict[str, Any] = {
    # Before/after epochs of the reference scenario
    "YEAR_A": 1990,
    "YEAR_B": 2020,

    # Nominal analysis resolution in metres (Landsat)
    "SCALE": 30.0,

    # Window size (pixels) for tiled median reduction.
    # None reduces the whole grid at once (fine for small AOIs)
    "TILE_SIZE": 512,

    # Earliest year with Landsat 5 Collection 2 surface reflectance
    "MIN_YEAR": 1984,
}


# Classification Configuration
CLASSIFICATION_CONFIG: Dict[str, float] = {
    # NDWI > threshold is water, NDWI <= threshold is land.
    # Reference output requires 0.0; not calibrated against ground truth yet
    "WATER_THRESHOLD": 0.0,
}


# Reduction Configuration
REDUCTION_CONFIG: Dict[str, float] = {
    # Maximum pixels a shoreline vectorization may touch
    "VECTOR_MAX_PIXELS": 1e12,

    # Maximum pixels an area reduction over the AOI may touch
    "REGION_MAX_PIXELS": 1e13,
}


# Imagery Source Configuration
STAC_CONFIG: Dict[str, Any] = {
    "CATALOG_URL": "https://planetarycomputer.microsoft.com/api/stac/v1",
    "COLLECTION": "landsat-c2-l2",

    # Planetary Computer requires signed asset URLs
    "SIGN_URL": "https://planetarycomputer.microsoft.com/api/sas/v1/sign",
    "SIGN_ASSETS": True,

    # Re-sign an asset this many seconds before its SAS token expires
    "SIGN_EXPIRY_MARGIN_SECONDS": 300,

    # HTTP behaviour
    "TIMEOUT_SECONDS": 30,
    "MAX_RETRIES": 3,
    "BACKOFF_FACTOR": 1.0,

    # Search paging
    "PAGE_SIZE": 100,
    "MAX_ITEMS": 2000,
}


# Performance Configuration
PERFORMANCE_CONFIG: Dict[str, Any] = {
    # Whether to build the two yearly composites concurrently.
    # Doubles peak memory; both branches hit the imagery source at once
    "PARALLEL_YEARS": False,

    # Keep each year's indexed composite in the result. Off, only the uint8
    # masks are held at full grid size
    "KEEP_COMPOSITES": False,
}


def get_all_config() -> Dict[str, Any]:
    """Returns all configuration as a single dictionary."""
    return {
        "aoi": AOI_CONFIG,
        "composite": COMPOSITE_CONFIG,
        "classification": CLASSIFICATION_CONFIG,
        "reduction": REDUCTION_CONFIG,
        "stac": STAC_CONFIG,
        "performance": PERFORMANCE_CONFIG,
    }


def validate_config() -> bool:
    """
    Validates configuration consistency.

    Returns:
        True if configuration is valid

    Raises:
        ValueError if configuration has logical inconsistencies
    """
    # Epochs must be ordered and inside the Landsat record
    if COMPOSITE_CONFIG["YEAR_A"] >= COMPOSITE_CONFIG["YEAR_B"]:
        raise ValueError("YEAR_A should be earlier than YEAR_B")

    if COMPOSITE_CONFIG["YEAR_A"] < COMPOSITE_CONFIG["MIN_YEAR"]:
        raise ValueError(
            f"YEAR_A should be >= {COMPOSITE_CONFIG['MIN_YEAR']}"
        )

    # Landsat products are not meaningful below 30 m
    if COMPOSITE_CONFIG["SCALE"] < 30:
        raise ValueError("SCALE should be at least 30 metres")

    tile_size = COMPOSITE_CONFIG["TILE_SIZE"]
    if tile_size is not None and tile_size < 1:
        raise ValueError("TILE_SIZE should be a positive pixel count or None")

    # NDWI lives in [-1, 1]
    if not -1.0 <= CLASSIFICATION_CONFIG["WATER_THRESHOLD"] <= 1.0:
        raise ValueError("WATER_THRESHOLD should be between -1 and 1")

    # Pixel ceilings are required and must be positive
    for key in ("VECTOR_MAX_PIXELS", "REGION_MAX_PIXELS"):
        if not REDUCTION_CONFIG[key] or REDUCTION_CONFIG[key] <= 0:
            raise ValueError(f"{key} should be a positive pixel count")

    if STAC_CONFIG["MAX_RETRIES"] < 0:
        raise ValueError("MAX_RETRIES should be >= 0")

    if STAC_CONFIG["PAGE_SIZE"] < 1:
        raise ValueError("PAGE_SIZE should be at least 1")

    if STAC_CONFIG["SIGN_EXPIRY_MARGIN_SECONDS"] < 0:
        raise ValueError("SIGN_EXPIRY_MARGIN_SECONDS should be >= 0")

    return True


# Validate configuration on module import
validate_config()
