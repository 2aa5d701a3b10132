"""
Shoreline Vectorization for ShoreWatch

Converts a composite's water pixels into polygons tagged with their year.
Polygons stay in the grid CRS, where their area is exactly the pixel count
times the pixel area; to_wgs84() warps them for map overlays.
"""

from __future__ import annotations
import numpy as np
from rasterio.crs import CRS
from rasterio.features import shapes
from shapely.geometry import shape
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shorewatch.config import COMPOSITE_CONFIG, REDUCTION_CONFIG
from shorewatch.utils.classification import water_mask
from shorewatch.utils.compositing import is_empty_composite
from shorewatch.utils.raster import Raster
from shorewatch.utils.spatial import (
    aoi_pixel_mask, check_pixel_limit, rescale_band, transform_features
)


@dataclass
class ShorelinePolygonSet:
    """Water polygons of one year, the shoreline proxy."""
    year: int
    crs: CRS
    features: List[Dict[str, Any]] = field(default_factory=list)
    pixel_count: int = 0
    pixel_area: float = 0.0  # nominal, grid CRS units
    no_data: bool = False

    def __len__(self) -> int:
        return len(self.features)

    @property
    def total_area(self) -> float:
        """Summed polygon area in grid CRS units."""
        return float(sum(shape(f["geometry"]).area for f in self.features))

    def to_wgs84(self) -> List[Dict[str, Any]]:
        return transform_features(self.features, self.crs)

    def to_feature_collection(self, wgs84: bool = True) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": self.to_wgs84() if wgs84 else list(self.features),
            "properties": {"year": self.year, "no_data": self.no_data},
        }


def water_polygons(
    image: Raster,
    year: int,
    aoi: Any,
    scale: Optional[float] = None,
    max_pixels: Optional[float] = None,
    threshold: Optional[float] = None
) -> ShorelinePolygonSet:
    """
    Vectorizes contiguous water regions (NDWI > threshold) inside the AOI.

    Args:
        image: Indexed composite (must carry NDWI)
        year: Year tag for every polygon
        aoi: Study area (EPSG:4326)
        scale: Vectorization resolution in metres (default from config)
        max_pixels: Pixel ceiling (default from config)
        threshold: NDWI threshold (default from config)

    Returns:
        ShorelinePolygonSet in the grid CRS

    Raises:
        ResourceLimitExceeded if the AOI holds more pixels than ``max_pixels``
    """
    return vectorize_water(water_mask(image, threshold), year, aoi, scale=scale, max_pixels=max_pixels)


def vectorize_water(
    water_raster: Raster,
    year: int,
    aoi: Any,
    scale: Optional[float] = None,
    max_pixels: Optional[float] = None
) -> ShorelinePolygonSet:
    """Vectorizes an existing ``Water`` mask; see water_polygons()."""
    if scale is None:
        scale = COMPOSITE_CONFIG["SCALE"]
    if max_pixels is None:
        max_pixels = REDUCTION_CONFIG["VECTOR_MAX_PIXELS"]

    water = water_raster.self_mask("Water").band("Water")
    water, grid = rescale_band(water, water_raster.grid, scale)

    region = aoi_pixel_mask(aoi, grid)
    check_pixel_limit("water_polygons", int(region.sum()), max_pixels)

    res_x, res_y = grid.resolution
    if is_empty_composite(water_raster):
        print(f"  ⚠️ No data for {year}: shoreline not vectorized")
        return ShorelinePolygonSet(year=year, crs=grid.crs, pixel_area=res_x * res_y, no_data=True)

    positive = (np.ma.filled(water, 0) == 1) & region
    features = []
    for geom, value in shapes(
        positive.astype(np.uint8),
        mask=positive,
        connectivity=4,
        transform=grid.transform
    ):
        features.append({
            "type": "Feature",
            "properties": {"year": year, "raster_value": int(value)},
            "geometry": geom,
        })

    print(f"  ✓ {year} shoreline: {len(features)} polygon(s) from {int(positive.sum())} water pixels")
    return ShorelinePolygonSet(
        year=year,
        crs=grid.crs,
        features=features,
        pixel_count=int(positive.sum()),
        pixel_area=res_x * res_y,
    )
