from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from shorewatch.config import (
    AOI_CONFIG,
    COMPOSITE_CONFIG,
    PERFORMANCE_CONFIG,
)
from shorewatch.exceptions import (
    AnalysisError,
    EmptyCompositeError,
    ImagerySourceError,
    ResourceLimitExceeded,
    ValidationError,
)
from shorewatch.utils.area import AreaStatistic, calculate_area
from shorewatch.utils.change import ChangeReport, change_report, format_report
from shorewatch.utils.classification import land_mask, water_mask
from shorewatch.utils.collection import ImageCollection, merge_collections
from shorewatch.utils.compositing import composite_tiles, year_collection, year_window
from shorewatch.utils.indices import add_indices
from shorewatch.utils.raster import Grid, Raster, paste_window
from shorewatch.utils.spatial import aoi_geometry, aoi_grid
from shorewatch.utils.stac_source import StacImagerySource, load_landsat_collections
from shorewatch.utils.vectorize import ShorelinePolygonSet, vectorize_water

KNOWN_ERRORS = (ResourceLimitExceeded, ValidationError, ImagerySourceError, AnalysisError)


@dataclass(frozen=True)
class YearProducts:
    """Everything derived from one epoch."""
    year: int
    composite: Optional[Raster]  # harmonized bands + NDVI + NDWI, when kept
    water: Raster
    land: Raster
    shoreline: ShorelinePolygonSet
    land_area: AreaStatistic


@dataclass(frozen=True)
class AnalysisResult:
    grid: Grid
    before: YearProducts
    after: YearProducts
    report: ChangeReport

    def summary(self) -> Dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "years": {
                str(products.year): {
                    "empty": bool(products.water.properties.get("empty", False)),
                    "image_count": products.water.properties.get("image_count", 0),
                    "land_area_m2": products.land_area.area_m2,
                    "valid_pixels": products.land_area.valid_pixels,
                    "shoreline_polygons": len(products.shoreline),
                }
                for products in (self.before, self.after)
            },
        }


def _validate_years(year_a: int, year_b: int) -> None:
    if year_a >= year_b:
        raise ValidationError(
            f"year_a ({year_a}) must be earlier than year_b ({year_b})",
            field_name="year_a",
            invalid_value=year_a
        )
    if year_a < COMPOSITE_CONFIG["MIN_YEAR"]:
        raise ValidationError(
            f"No Landsat surface reflectance before {COMPOSITE_CONFIG['MIN_YEAR']}",
            field_name="year_a",
            invalid_value=year_a
        )


def _stream_year(
    collection: ImageCollection,
    year: int,
    aoi: Any,
    grid: Grid,
    tile_size: Optional[int],
    threshold: Optional[float],
    keep_composite: bool
):
    """
    Composites, indexes and classifies one year tile by tile.

    Only the uint8 masks (and, when asked, the indexed composite) are
    assembled at full grid size.

    Returns:
        (composite or None, water, land), tagged with year, empty, image_count
    """
    filtered, image_count = year_collection(collection, year, aoi)
    if image_count == 0:
        print(f"  ⚠️ {EmptyCompositeError(year, image_count)}")

    composite_bands: Dict[str, np.ma.MaskedArray] = {}
    water_bands: Dict[str, np.ma.MaskedArray] = {}
    land_bands: Dict[str, np.ma.MaskedArray] = {}
    has_data = False

    for window, tile in composite_tiles(filtered, aoi, grid, tile_size):
        has_data = has_data or not tile.is_fully_masked()
        indexed = add_indices(tile)
        paste_window(water_bands, grid, window, water_mask(indexed, threshold))
        paste_window(land_bands, grid, window, land_mask(indexed, threshold))
        if keep_composite:
            paste_window(composite_bands, grid, window, indexed)

    empty = image_count == 0 or not has_data
    if image_count and empty:
        print(f"  ⚠️ {EmptyCompositeError(year, image_count)}")
    if image_count:
        print(f"  ✓ {year} composite from {image_count} image(s)")

    tags = {"year": year, "empty": empty, "image_count": image_count}
    water = Raster(bands=water_bands, grid=grid, properties=dict(tags))
    land = Raster(bands=land_bands, grid=grid, properties=dict(tags))
    composite = Raster(bands=composite_bands, grid=grid, properties=dict(tags)) if keep_composite else None
    return composite, water, land


def process_year(
    collection: ImageCollection,
    year: int,
    aoi: Any,
    grid: Grid,
    scale: float,
    tile_size: Optional[int] = None,
    threshold: Optional[float] = None,
    vector_max_pixels: Optional[float] = None,
    region_max_pixels: Optional[float] = None,
    keep_composite: bool = False
) -> YearProducts:
    """Composite, index, classify, vectorize and measure one epoch."""
    stage = f"composite {year}"
    try:
        print(f"\nProcessing {year}...")
        composite, water, land = _stream_year(
            collection, year, aoi, grid, tile_size, threshold, keep_composite
        )

        stage = f"vectorization {year}"
        shoreline = vectorize_water(
            water, year, aoi,
            scale=scale, max_pixels=vector_max_pixels
        )

        stage = f"area {year}"
        land_area = calculate_area(
            land, aoi,
            scale=scale, max_pixels=region_max_pixels, tile_size=tile_size
        )
        print(f"  Land area {year} (m²): {land_area.area_m2:,.2f}")

        return YearProducts(
            year=year,
            composite=composite,
            water=water,
            land=land,
            shoreline=shoreline,
            land_area=land_area,
        )
    except KNOWN_ERRORS:
        raise
    except Exception as e:
        raise AnalysisError(
            f"Unexpected error during analysis: {str(e)}",
            stage=stage,
            original_error=e
        ) from e


def run_analysis(
    *,
    collection: ImageCollection,
    aoi: Any = None,
    year_a: Optional[int] = None,
    year_b: Optional[int] = None,
    grid: Optional[Grid] = None,
    scale: Optional[float] = None,
    tile_size: Optional[int] = None,
    threshold: Optional[float] = None,
    vector_max_pixels: Optional[float] = None,
    region_max_pixels: Optional[float] = None,
    parallel: Optional[bool] = None,
    keep_composites: Optional[bool] = None,
) -> AnalysisResult:
    """
    Runs the two-epoch land/water change analysis on a harmonized collection.

    Args:
        collection: Preprocessed, merged collection covering both years
        aoi: Study area in EPSG:4326 (default from config)
        year_a: Earlier epoch (default from config)
        year_b: Later epoch (default from config)
        grid: Analysis grid (default: UTM grid over the AOI at ``scale``)
        scale: Resolution in metres (default from config)
        tile_size: Reduction window size (default from config)
        threshold: NDWI water threshold (default from config)
        vector_max_pixels: Pixel ceiling of the vectorizer (default from config)
        region_max_pixels: Pixel ceiling of the area reduction (default from config)
        parallel: Build both years concurrently (default from config)
        keep_composites: Keep the indexed composites in the result (default from config)

    Returns:
        AnalysisResult with masks, shorelines, areas, the report and
        (when kept) the composites

    Raises:
        ValidationError: For bad years or AOI
        ResourceLimitExceeded: When a reduction exceeds its pixel ceiling
        ImagerySourceError: When imagery cannot be fetched
        AnalysisError: For other unrecoverable errors
    """
    aoi = aoi if aoi is not None else AOI_CONFIG["DEFAULT_AOI"]
    year_a = year_a if year_a is not None else COMPOSITE_CONFIG["YEAR_A"]
    year_b = year_b if year_b is not None else COMPOSITE_CONFIG["YEAR_B"]
    scale = scale if scale is not None else COMPOSITE_CONFIG["SCALE"]
    parallel = parallel if parallel is not None else PERFORMANCE_CONFIG["PARALLEL_YEARS"]
    if keep_composites is None:
        keep_composites = PERFORMANCE_CONFIG["KEEP_COMPOSITES"]

    print(f"\n{'='*60}")
    print(f"ANALYSIS PIPELINE - Validation")
    print(f"{'='*60}")

    _validate_years(year_a, year_b)
    aoi_geometry(aoi)
    if grid is None:
        grid = aoi_grid(aoi, scale=scale)

    print(f"  ✓ Validation passed")
    print(f"  Epochs: {year_a} → {year_b}")
    print(f"  Grid: {grid.width} x {grid.height} px @ {grid.resolution[0]:g} ({grid.crs})")

    print(f"\n--- STAGE 1: Composites, Masks, Shorelines, Areas ---")
    options = dict(
        tile_size=tile_size,
        threshold=threshold,
        vector_max_pixels=vector_max_pixels,
        region_max_pixels=region_max_pixels,
        keep_composite=keep_composites,
    )
    if parallel:
        with ThreadPoolExecutor(max_workers=2) as pool:
            future_a = pool.submit(process_year, collection, year_a, aoi, grid, scale, **options)
            future_b = pool.submit(process_year, collection, year_b, aoi, grid, scale, **options)
            before, after = future_a.result(), future_b.result()
    else:
        before = process_year(collection, year_a, aoi, grid, scale, **options)
        after = process_year(collection, year_b, aoi, grid, scale, **options)

    print(f"\n--- STAGE 2: Change Report ---")
    report = change_report(before.land_area, after.land_area)
    print(format_report(report))

    return AnalysisResult(grid=grid, before=before, after=after, report=report)


def run_landsat_analysis(
    *,
    aoi: Any = None,
    year_a: Optional[int] = None,
    year_b: Optional[int] = None,
    source: Optional[StacImagerySource] = None,
    **kwargs
) -> AnalysisResult:
    """
    Fetches Landsat 5/7/8/9 scenes for both years, harmonizes and merges them,
    then runs the change analysis.
    """
    aoi = aoi if aoi is not None else AOI_CONFIG["DEFAULT_AOI"]
    year_a = year_a if year_a is not None else COMPOSITE_CONFIG["YEAR_A"]
    year_b = year_b if year_b is not None else COMPOSITE_CONFIG["YEAR_B"]
    source = source or StacImagerySource()

    _validate_years(year_a, year_b)

    collections = []
    for year in (year_a, year_b):
        start, end = year_window(year)
        collections.extend(load_landsat_collections(source, aoi, start, end).values())

    merged = merge_collections(*collections)
    return run_analysis(collection=merged, aoi=aoi, year_a=year_a, year_b=year_b, **kwargs)
