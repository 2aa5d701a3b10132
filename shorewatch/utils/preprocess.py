"""
Scene Preprocessing for ShoreWatch

Per-image cloud/shadow masking from the QA_PIXEL bit field and band
harmonization into the canonical six-band schema.
"""

from __future__ import annotations
import numpy as np
from typing import Optional

from shorewatch.exceptions import MissingBandError
from shorewatch.utils.collection import ImageCollection
from shorewatch.utils.raster import Raster
from shorewatch.utils.sensors import QA_BAND, SensorFamily


def clear_sky_mask(qa: np.ma.MaskedArray, shadow_bit: int, cloud_bit: int) -> np.ndarray:
    """
    Boolean array, True where neither the cloud-shadow nor the cloud bit is set.

    Either bit alone invalidates the pixel. Pixels with no QA value are invalid.
    """
    flags = np.ma.getdata(qa).astype(np.int64)
    shadow = (flags & (1 << shadow_bit)) != 0
    cloud = (flags & (1 << cloud_bit)) != 0
    return ~(shadow | cloud) & ~np.ma.getmaskarray(qa)


def mask_clouds(image: Raster, family: SensorFamily) -> Raster:
    """Invalidates cloud and cloud-shadow pixels of a raw scene."""
    qa = image.band(QA_BAND)
    return image.update_mask(clear_sky_mask(qa, family.shadow_bit, family.cloud_bit))


def rename_bands(image: Raster, family: SensorFamily) -> Raster:
    """
    Maps native band names to the canonical schema and drops every other band.

    Raises:
        MissingBandError if the scene lacks one of the sensor's six bands
    """
    native, canonical = family.native_bands
    return image.select(native, canonical).set(sensor=family.name)


def harmonize(image: Raster, family: SensorFamily) -> Raster:
    return rename_bands(mask_clouds(image, family), family)


def preprocess_collection(collection: ImageCollection, family: SensorFamily) -> ImageCollection:
    """
    Harmonizes every image of a per-sensor collection.

    Images missing a required band are dropped with a warning; the rest of the
    collection is unaffected.
    """
    def _harmonize_or_skip(image: Raster) -> Optional[Raster]:
        try:
            return harmonize(image, family)
        except MissingBandError as e:
            print(f"  ⚠️ Skipping image for {family.name}: {e}")
            return None

    return collection.map(_harmonize_or_skip)
