"""
Test suite for shoreline vectorization.

Tests polygon area against pixel counts, year tagging, the pixel ceiling and
the no-data path for empty composites.
"""

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.features import rasterize
from rasterio.transform import from_origin
from shapely.geometry import mapping, shape

from shorewatch.exceptions import ResourceLimitExceeded
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.spatial import grid_footprint
from shorewatch.utils.vectorize import water_polygons

GRID = Grid(crs=CRS.from_epsg(32617), transform=from_origin(500000, 3000000, 30, 30), width=10, height=10)
AOI = mapping(grid_footprint(GRID))


def _composite(water, empty=False):
    ndwi = np.where(water, 0.5, -0.3)
    return Raster.from_arrays({"NDWI": ndwi}, GRID, properties={"year": 2020, "empty": empty})


def _two_lakes():
    water = np.zeros(GRID.shape, dtype=bool)
    water[1:4, 1:5] = True  # 12 px
    water[7:9, 6:8] = True  # 4 px
    return water


def test_polygon_area_matches_pixel_count():
    result = water_polygons(_composite(_two_lakes()), 2020, AOI, scale=30)

    assert len(result) == 2
    assert result.pixel_count == 16
    assert result.pixel_area == 900.0
    assert result.total_area == pytest.approx(16 * 900.0)
    areas = sorted(shape(f["geometry"]).area for f in result.features)
    assert areas == pytest.approx([4 * 900.0, 12 * 900.0])
    print("  ✅ Polygon area = water pixels x 900 m²")


def test_polygons_cover_only_water_pixels():
    water = _two_lakes()
    result = water_polygons(_composite(water), 2020, AOI, scale=30)

    burned = rasterize(
        [(f["geometry"], 1) for f in result.features],
        out_shape=GRID.shape,
        transform=GRID.transform,
        fill=0,
        dtype=np.uint8,
    )
    assert np.array_equal(burned.astype(bool), water)


def test_every_polygon_carries_its_year():
    result = water_polygons(_composite(_two_lakes()), 1990, AOI, scale=30)
    assert result.year == 1990
    assert all(f["properties"]["year"] == 1990 for f in result.features)

    collection = result.to_feature_collection()
    assert collection["type"] == "FeatureCollection"
    assert collection["properties"]["year"] == 1990
    for feat in collection["features"]:
        lon, lat = feat["geometry"]["coordinates"][0][0]
        assert -82 < lon < -80
        assert 26 < lat < 28


def test_diagonal_pixels_are_separate_polygons():
    water = np.zeros(GRID.shape, dtype=bool)
    water[2, 2] = True
    water[3, 3] = True
    result = water_polygons(_composite(water), 2020, AOI, scale=30)
    assert len(result) == 2


def test_pixel_ceiling_fails_fast():
    with pytest.raises(ResourceLimitExceeded) as excinfo:
        water_polygons(_composite(_two_lakes()), 2020, AOI, scale=30, max_pixels=50)
    assert excinfo.value.operation == "water_polygons"
    assert excinfo.value.pixel_count == 100


def test_empty_composite_yields_no_data():
    result = water_polygons(_composite(_two_lakes(), empty=True), 2020, AOI, scale=30)
    assert result.no_data
    assert len(result) == 0


def test_coarser_scale_resamples_first():
    water = np.zeros(GRID.shape, dtype=bool)
    water[:4, :4] = True
    result = water_polygons(_composite(water), 2020, AOI, scale=60)
    assert result.pixel_area == 3600.0
    assert result.total_area == pytest.approx(16 * 900.0)
