"""
Temporal Compositing for ShoreWatch

Reduces a merged collection to one median composite per calendar year, either
as a full-grid raster or as a stream of AOI-clipped tiles.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Iterator, Optional, Tuple

from rasterio.windows import Window

from shorewatch.config import COMPOSITE_CONFIG
from shorewatch.exceptions import EmptyCompositeError
from shorewatch.utils.collection import ImageCollection
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.sensors import CANONICAL_BANDS


def year_window(year: int):
    """[Jan 1 of ``year``, Jan 1 of ``year + 1``): Dec 31 is included."""
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


def year_collection(collection: ImageCollection, year: int, aoi: Any) -> Tuple[ImageCollection, int]:
    """Filters to the AOI and calendar year; returns the collection and its size."""
    start, end = year_window(year)
    filtered = collection.filter_bounds(aoi).filter_date(start, end)
    return filtered, filtered.size()


def composite_tiles(
    filtered: ImageCollection,
    aoi: Any,
    grid: Grid,
    tile_size: Optional[int] = None
) -> Iterator[Tuple[Window, Raster]]:
    """
    Yields ``(window, composite tile)`` pairs covering the grid.

    Each tile is the median of ``filtered`` over that window, clipped to the
    AOI. Only one tile is held in memory at a time.
    """
    if tile_size is None:
        tile_size = COMPOSITE_CONFIG["TILE_SIZE"]

    for window in grid.tiles(tile_size):
        yield window, filtered.median_window(grid, window, CANONICAL_BANDS).clip(aoi)


def year_composite(
    collection: ImageCollection,
    year: int,
    aoi: Any,
    grid: Grid,
    tile_size: Optional[int] = None
) -> Raster:
    """
    Builds the median composite of one calendar year, clipped to the AOI.

    Args:
        collection: Harmonized, merged collection
        year: Target calendar year
        aoi: Study area (EPSG:4326)
        grid: Analysis grid
        tile_size: Window size for the reduction (default from config)

    Returns:
        Composite tagged with ``year``. When no image falls in the year or
        every pixel ends up masked, the composite is fully masked and
        ``properties["empty"]`` is True.
    """
    if tile_size is None:
        tile_size = COMPOSITE_CONFIG["TILE_SIZE"]

    filtered, image_count = year_collection(collection, year, aoi)

    if image_count == 0:
        print(f"  ⚠️ {EmptyCompositeError(year, image_count)}")
        return Raster.empty(grid, CANONICAL_BANDS).set(year=year, empty=True, image_count=0)

    composite = filtered.median(grid, CANONICAL_BANDS, tile_size=tile_size).clip(aoi)
    empty = composite.is_fully_masked()
    if empty:
        print(f"  ⚠️ {EmptyCompositeError(year, image_count)}")

    print(f"  ✓ {year} composite from {image_count} image(s)")
    return composite.set(year=year, empty=empty, image_count=image_count)


def is_empty_composite(image: Raster) -> bool:
    """True when the raster derives from a composite without observations."""
    return bool(image.properties.get("empty", False))
