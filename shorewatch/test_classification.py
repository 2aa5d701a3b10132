"""
Test suite for NDWI land/water classification.
"""

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import from_origin

from shorewatch.utils.classification import land_mask, water_mask
from shorewatch.utils.raster import Grid, Raster

GRID = Grid(crs=CRS.from_epsg(32617), transform=from_origin(500000, 3000000, 30, 30), width=3, height=2)


def _indexed(ndwi, mask=None):
    band = np.ma.MaskedArray(np.asarray(ndwi, dtype=float), mask=mask if mask is not None else False)
    return Raster.from_arrays({"NDWI": band}, GRID, properties={"year": 2020})


def test_reference_pixels():
    image = _indexed([[-0.2, 0.5, 0.0], [1.0, -1.0, 0.01]])
    water = water_mask(image).band("Water")
    land = land_mask(image).band("Land")

    assert water.tolist() == [[0, 1, 0], [1, 0, 1]]
    # NDWI == 0 is land
    assert land.tolist() == [[1, 0, 1], [0, 1, 0]]
    print("  ✅ NDWI -0.2 is land, 0.5 is water")


def test_masks_are_complementary():
    rng = np.random.default_rng(3)
    ndwi = rng.uniform(-1, 1, GRID.shape)
    invalid = rng.uniform(0, 1, GRID.shape) > 0.7
    image = _indexed(ndwi, mask=invalid)

    water = water_mask(image).band("Water")
    land = land_mask(image).band("Land")

    assert np.array_equal(water.mask, invalid)
    assert np.array_equal(land.mask, invalid)
    valid = ~invalid
    assert ((water.data + land.data)[valid] == 1).all()


def test_threshold_override():
    image = _indexed([[0.1, 0.3, 0.25], [-0.5, 0.9, 0.2]])
    water = water_mask(image, threshold=0.25).band("Water")
    assert water.tolist() == [[0, 1, 0], [0, 1, 0]]


def test_single_band_output_keeps_metadata():
    result = water_mask(_indexed(np.zeros(GRID.shape)))
    assert result.band_names == ["Water"]
    assert result.band("Water").dtype == np.uint8
    assert result.properties["year"] == 2020
    assert result.grid == GRID
