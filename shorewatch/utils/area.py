"""
Area Calculation for ShoreWatch

Sums the true ground area of mask pixels over the AOI. Pixel area varies
with latitude (geographic grids) or with the projection scale factor
(projected grids), so it is computed per pixel rather than taken as a
constant.
"""

from __future__ import annotations
import numpy as np
from pyproj import Geod, Proj, Transformer
from dataclasses import dataclass
from typing import Any, Optional

from shorewatch.config import COMPOSITE_CONFIG, REDUCTION_CONFIG
from shorewatch.exceptions import ValidationError
from shorewatch.utils.compositing import is_empty_composite
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.spatial import aoi_pixel_mask, check_pixel_limit, rescale_band


@dataclass(frozen=True)
class AreaStatistic:
    """
    Summed mask area of one year.

    ``no_data`` marks a degenerate result: no valid pixel inside the AOI, so
    ``area_m2`` is 0 because nothing could be measured, not because there is
    no land.
    """
    year: Optional[int]
    area_m2: float
    valid_pixels: int
    no_data: bool = False

    @property
    def area_km2(self) -> float:
        return self.area_m2 / 1e6


def pixel_area(grid: Grid) -> np.ndarray:
    """
    Ground area of every pixel of the grid, in square metres.

    Geographic grids use the geodesic area of each row's cell on the WGS84
    ellipsoid. Projected grids divide the nominal cell area by the areal
    scale factor of the projection at each pixel centre.
    """
    t = grid.transform
    if t.b != 0 or t.d != 0:
        raise ValidationError("Rotated grids are not supported", field_name="transform")

    if grid.is_geographic:
        geod = Geod(ellps="WGS84")
        west = t.c
        east = t.c + t.a
        row_areas = np.empty(grid.height, dtype=np.float64)
        for row in range(grid.height):
            top = t.f + row * t.e
            bottom = top + t.e
            area, _ = geod.polygon_area_perimeter(
                [west, east, east, west],
                [bottom, bottom, top, top]
            )
            row_areas[row] = abs(area)
        return np.repeat(row_areas[:, np.newaxis], grid.width, axis=1)

    cols, rows = np.meshgrid(
        np.arange(grid.width) + 0.5,
        np.arange(grid.height) + 0.5
    )
    xs = t.c + t.a * cols
    ys = t.f + t.e * rows
    crs_wkt = grid.crs.to_wkt()
    transformer = Transformer.from_crs(crs_wkt, "EPSG:4326", always_xy=True)
    lons, lats = transformer.transform(xs, ys)
    factors = Proj(crs_wkt).get_factors(lons, lats)

    res_x, res_y = grid.resolution
    return (res_x * res_y) / np.asarray(factors.areal_scale, dtype=np.float64)


def calculate_area(
    image: Raster,
    aoi: Any,
    scale: Optional[float] = None,
    max_pixels: Optional[float] = None,
    band: Optional[str] = None,
    tile_size: Optional[int] = None
) -> AreaStatistic:
    """
    Sums the ground area of valid pixels equal to 1 inside the AOI.

    Args:
        image: Single-band mask raster (Land or Water)
        aoi: Study area (EPSG:4326)
        scale: Reduction resolution in metres (default from config)
        max_pixels: Pixel ceiling (default from config)
        band: Band to reduce (default: the only band)
        tile_size: Window size for the pixel-area computation (default from config)

    Returns:
        AreaStatistic; fully invalid masks give area 0 with ``no_data`` set

    Raises:
        ResourceLimitExceeded if the AOI holds more pixels than ``max_pixels``
    """
    if scale is None:
        scale = COMPOSITE_CONFIG["SCALE"]
    if max_pixels is None:
        max_pixels = REDUCTION_CONFIG["REGION_MAX_PIXELS"]
    if tile_size is None:
        tile_size = COMPOSITE_CONFIG["TILE_SIZE"]
    if band is None:
        if len(image.band_names) != 1:
            raise ValidationError(
                f"Area needs a single-band mask, got {image.band_names}",
                field_name="band"
            )
        band = image.band_names[0]

    values, grid = rescale_band(image.band(band), image.grid, scale)

    region = aoi_pixel_mask(aoi, grid)
    check_pixel_limit("calculate_area", int(region.sum()), max_pixels)

    valid = ~np.ma.getmaskarray(values) & region
    member = (np.ma.filled(values, 0) == 1) & valid
    valid_pixels = int(valid.sum())
    year = image.properties.get("year")

    if valid_pixels == 0 or is_empty_composite(image):
        return AreaStatistic(year=year, area_m2=0.0, valid_pixels=0, no_data=True)

    total = 0.0
    for window in grid.tiles(tile_size):
        rows, cols = window.toslices()
        tile_member = member[rows, cols]
        if tile_member.any():
            total += float(pixel_area(grid.sub_grid(window))[tile_member].sum())

    return AreaStatistic(year=year, area_m2=total, valid_pixels=valid_pixels)
