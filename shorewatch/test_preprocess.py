"""
Test suite for scene preprocessing.

Tests QA bit masking, band harmonization for both band schemas and the
exclusion of scenes with missing bands.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from shorewatch.exceptions import MissingBandError
from shorewatch.utils.collection import InMemoryCollection
from shorewatch.utils.preprocess import (
    clear_sky_mask,
    harmonize,
    mask_clouds,
    preprocess_collection,
    rename_bands,
)
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.sensors import CANONICAL_BANDS, SensorFamily

GRID = Grid(crs=CRS.from_epsg(32617), transform=from_origin(500000, 3000000, 30, 30), width=2, height=2)

SHADOW = 1 << 3
CLOUD = 1 << 5


def _raw_scene(qa, bands=("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7"), image_id="scene"):
    arrays = {name: np.full((2, 2), 100 * int(name[-1]), dtype=np.uint16) for name in bands}
    arrays["QA_PIXEL"] = np.asarray(qa, dtype=np.uint16)
    return Raster.from_arrays(arrays, GRID, acquired_at=datetime(2020, 6, 1), image_id=image_id)


def test_shadow_bit_alone_invalidates():
    qa = np.array([[SHADOW, 0], [0, 0]])
    clear = clear_sky_mask(np.ma.asarray(qa), shadow_bit=3, cloud_bit=5)
    assert not clear[0, 0]
    assert clear[0, 1] and clear[1, 0] and clear[1, 1]
    print("  ✅ Shadow bit alone masks the pixel")


def test_cloud_bit_alone_invalidates():
    qa = np.array([[0, CLOUD], [SHADOW | CLOUD, 0]])
    clear = clear_sky_mask(np.ma.asarray(qa), shadow_bit=3, cloud_bit=5)
    assert clear[0, 0]
    assert not clear[0, 1]
    assert not clear[1, 0]
    print("  ✅ Cloud bit alone masks the pixel")


def test_other_qa_bits_are_ignored():
    # Bit 6 (clear) and bit 7 (water) must not mask anything
    qa = np.array([[1 << 6, 1 << 7], [(1 << 6) | (1 << 7), 0]])
    clear = clear_sky_mask(np.ma.asarray(qa), shadow_bit=3, cloud_bit=5)
    assert clear.all()


def test_mask_clouds_masks_every_band():
    scene = _raw_scene([[CLOUD, 0], [0, SHADOW]])
    masked = mask_clouds(scene, SensorFamily.LANDSAT_8)
    for name in masked.band_names:
        band = masked.band(name)
        assert band.mask[0, 0] and band.mask[1, 1]
        assert not band.mask[0, 1] and not band.mask[1, 0]


def test_rename_tm_etm_schema():
    scene = _raw_scene(np.zeros((2, 2)))
    for family in (SensorFamily.LANDSAT_5, SensorFamily.LANDSAT_7):
        renamed = rename_bands(scene, family)
        assert renamed.band_names == CANONICAL_BANDS
        # SR_B1 -> Blue, SR_B4 -> NIR, SR_B7 -> SWIR2
        assert renamed.band("Blue")[0, 0] == 100
        assert renamed.band("NIR")[0, 0] == 400
        assert renamed.band("SWIR1")[0, 0] == 500
        assert renamed.band("SWIR2")[0, 0] == 700
    print("  ✅ Landsat 5/7 bands harmonized")


def test_rename_oli_schema():
    scene = _raw_scene(np.zeros((2, 2)))
    for family in (SensorFamily.LANDSAT_8, SensorFamily.LANDSAT_9):
        renamed = rename_bands(scene, family)
        assert renamed.band_names == CANONICAL_BANDS
        assert renamed.band("Blue")[0, 0] == 200
        assert renamed.band("NIR")[0, 0] == 500
        assert renamed.band("SWIR1")[0, 0] == 600
        assert renamed.band("SWIR2")[0, 0] == 700
    print("  ✅ Landsat 8/9 bands harmonized")


def test_unmapped_bands_are_dropped():
    harmonized = harmonize(_raw_scene(np.zeros((2, 2))), SensorFamily.LANDSAT_8)
    assert "QA_PIXEL" not in harmonized.band_names
    assert "SR_B1" not in harmonized.band_names
    assert harmonized.properties["sensor"] == "LANDSAT_8"


def test_missing_band_raises():
    scene = _raw_scene(np.zeros((2, 2)), bands=("SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6"))
    with pytest.raises(MissingBandError) as excinfo:
        rename_bands(scene, SensorFamily.LANDSAT_9)
    assert excinfo.value.band_name == "SR_B7"
    assert excinfo.value.image_id == "scene"


def test_preprocess_collection_skips_incomplete_scenes():
    good = _raw_scene(np.zeros((2, 2)), image_id="good")
    broken = _raw_scene(np.zeros((2, 2)), bands=("SR_B1", "SR_B2"), image_id="broken")
    collection = preprocess_collection(InMemoryCollection([good, broken]), SensorFamily.LANDSAT_5)

    images = list(collection)
    assert [img.image_id for img in images] == ["good"]
    assert collection.size() == 1
    print("  ✅ Scene with missing bands excluded, run continues")
