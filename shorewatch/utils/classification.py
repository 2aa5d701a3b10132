"""
Land/Water Classification for ShoreWatch

Thresholds NDWI into complementary water and land masks. Pixels with invalid
NDWI stay invalid in both masks.
"""

from __future__ import annotations
import numpy as np
from dataclasses import replace
from typing import Optional

from shorewatch.config import CLASSIFICATION_CONFIG
from shorewatch.utils.raster import Raster


def _threshold(threshold: Optional[float]) -> float:
    if threshold is None:
        return CLASSIFICATION_CONFIG["WATER_THRESHOLD"]
    return threshold


def _as_mask(image: Raster, name: str, member: np.ndarray, ndwi: np.ma.MaskedArray) -> Raster:
    band = np.ma.MaskedArray(member.astype(np.uint8), mask=np.ma.getmaskarray(ndwi))
    return replace(image, bands={name: band})


def water_mask(image: Raster, threshold: Optional[float] = None) -> Raster:
    """Single-band ``Water`` mask: 1 where NDWI > threshold, else 0."""
    ndwi = image.band("NDWI")
    return _as_mask(image, "Water", np.ma.filled(ndwi, 0.0) > _threshold(threshold), ndwi)


def land_mask(image: Raster, threshold: Optional[float] = None) -> Raster:
    """Single-band ``Land`` mask: 1 where NDWI <= threshold, else 0."""
    ndwi = image.band("NDWI")
    return _as_mask(image, "Land", np.ma.filled(ndwi, 0.0) <= _threshold(threshold), ndwi)
