"""
Test suite for collection merging and yearly median composites.
"""

from datetime import datetime

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import from_origin
from rasterio.windows import Window
from shapely.geometry import mapping

from shorewatch.utils.collection import InMemoryCollection, MergedCollection, merge_collections
from shorewatch.utils.compositing import is_empty_composite, year_composite
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.sensors import CANONICAL_BANDS
from shorewatch.utils.spatial import grid_footprint

GRID = Grid(crs=CRS.from_epsg(32617), transform=from_origin(500000, 3000000, 30, 30), width=4, height=4)
AOI = mapping(grid_footprint(GRID))


def _image(value, when, invalid=None, image_id=None):
    """Harmonized image with every band set to ``value``."""
    arrays = {}
    for name in CANONICAL_BANDS:
        data = np.full(GRID.shape, value, dtype=np.float64)
        mask = np.zeros(GRID.shape, dtype=bool) if invalid is None else invalid.copy()
        arrays[name] = np.ma.MaskedArray(data, mask=mask)
    return Raster.from_arrays(arrays, GRID, acquired_at=when, image_id=image_id)


def test_median_per_pixel():
    collection = InMemoryCollection([
        _image(1.0, datetime(2020, 2, 1)),
        _image(5.0, datetime(2020, 5, 1)),
        _image(3.0, datetime(2020, 9, 1)),
    ])
    composite = year_composite(collection, 2020, AOI, GRID)
    assert not is_empty_composite(composite)
    assert composite.properties["year"] == 2020
    assert composite.properties["image_count"] == 3
    for name in CANONICAL_BANDS:
        assert np.allclose(composite.band(name), 3.0)
        assert composite.band(name).dtype == np.float32
    print("  ✅ Median of 1, 5, 3 is 3")


def test_masked_observations_do_not_contribute():
    cloudy = np.zeros(GRID.shape, dtype=bool)
    cloudy[0, 0] = True
    collection = InMemoryCollection([
        _image(1.0, datetime(2020, 2, 1)),
        _image(100.0, datetime(2020, 3, 1), invalid=cloudy),
        _image(3.0, datetime(2020, 4, 1)),
    ])
    composite = year_composite(collection, 2020, AOI, GRID)
    red = composite.band("Red")
    # Only 1 and 3 are valid at (0, 0); elsewhere 1, 3, 100
    assert red[0, 0] == 2.0
    assert red[1, 1] == 3.0
    assert composite.properties["observations"][0, 0] == 2


def test_pixels_without_observations_stay_invalid():
    invalid = np.zeros(GRID.shape, dtype=bool)
    invalid[2, 3] = True
    collection = InMemoryCollection([
        _image(4.0, datetime(2020, 1, 10), invalid=invalid),
        _image(6.0, datetime(2020, 1, 20), invalid=invalid),
    ])
    composite = year_composite(collection, 2020, AOI, GRID)
    assert composite.band("NIR").mask[2, 3]
    assert not np.ma.is_masked(composite.band("NIR")[0, 0])
    # Zero observations must not turn into a zero value
    assert np.ma.count(composite.band("NIR")) == GRID.size - 1


def test_year_window_includes_dec_31():
    collection = InMemoryCollection([
        _image(1.0, datetime(2019, 12, 31, 23, 0)),
        _image(2.0, datetime(2020, 1, 1, 0, 0)),
        _image(3.0, datetime(2020, 12, 31, 18, 30)),
        _image(50.0, datetime(2021, 1, 1, 0, 0)),
    ])
    composite = year_composite(collection, 2020, AOI, GRID)
    assert composite.properties["image_count"] == 2
    assert np.allclose(composite.band("Blue"), 2.5)


def test_empty_year_gives_flagged_invalid_composite():
    collection = InMemoryCollection([_image(1.0, datetime(1995, 6, 1))])
    composite = year_composite(collection, 1990, AOI, GRID)
    assert is_empty_composite(composite)
    assert composite.properties["year"] == 1990
    assert composite.band_names == CANONICAL_BANDS
    assert composite.is_fully_masked()
    print("  ✅ Empty year detectable, not zero-filled")


def test_fully_clouded_year_is_flagged_empty():
    everything = np.ones(GRID.shape, dtype=bool)
    collection = InMemoryCollection([_image(1.0, datetime(1990, 6, 1), invalid=everything)])
    composite = year_composite(collection, 1990, AOI, GRID)
    assert is_empty_composite(composite)
    assert composite.properties["image_count"] == 1


def test_composite_is_clipped_to_aoi():
    left_half = mapping(grid_footprint(GRID.sub_grid(Window(0, 0, 2, 4))))
    collection = InMemoryCollection([_image(7.0, datetime(2020, 6, 1))])
    composite = year_composite(collection, 2020, left_half, GRID)
    green = composite.band("Green")
    assert not green.mask[:, :2].any()
    assert green.mask[:, 2:].all()


def test_tiled_median_matches_full_grid():
    rng = np.random.default_rng(7)
    images = []
    for day in range(1, 6):
        arrays = {name: rng.uniform(0, 1, GRID.shape) for name in CANONICAL_BANDS}
        images.append(Raster.from_arrays(arrays, GRID, acquired_at=datetime(2020, 3, day)))
    collection = InMemoryCollection(images)

    whole = year_composite(collection, 2020, AOI, GRID, tile_size=None)
    tiled = year_composite(collection, 2020, AOI, GRID, tile_size=3)
    for name in CANONICAL_BANDS:
        assert np.array_equal(whole.band(name), tiled.band(name))


def test_merge_keeps_every_image():
    a = InMemoryCollection([_image(1.0, datetime(2020, 1, 5), image_id="a1")])
    b = InMemoryCollection([
        _image(1.0, datetime(2020, 1, 5), image_id="b1"),
        _image(2.0, datetime(2020, 1, 6), image_id="b2"),
    ])
    c = InMemoryCollection([])
    merged = merge_collections(a, b, c)
    assert isinstance(merged, MergedCollection)
    assert len(merged.members) == 3
    assert merged.size() == 3
    # Same date, same footprint, different sensors: both kept
    assert [img.image_id for img in merged] == ["a1", "b1", "b2"]


def test_map_drops_nulls_and_runs_lazily():
    calls = []

    def keep_even(image):
        calls.append(image.image_id)
        return image if int(image.image_id) % 2 == 0 else None

    collection = InMemoryCollection([
        _image(float(i), datetime(2020, 1, i + 1), image_id=str(i)) for i in range(4)
    ]).map(keep_even)
    assert calls == []

    kept = [img.image_id for img in collection.filter_date(datetime(2020, 1, 1), datetime(2020, 1, 3))]
    assert kept == ["0"]
