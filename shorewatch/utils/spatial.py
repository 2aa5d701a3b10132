import math
import numpy as np
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import from_origin
from rasterio.warp import transform_geom, reproject, Resampling
from shapely.geometry import shape, mapping, box
from shapely.geometry.base import BaseGeometry
from typing import Any, List, Tuple

from shorewatch.exceptions import ResourceLimitExceeded, ValidationError
from shorewatch.utils.raster import Grid

WGS84 = CRS.from_epsg(4326)


def _extract_geometry(geojson_input: dict) -> dict:
    """
    Extracts a single geometry from various GeoJSON formats.

    Handles:
    - Geometry objects (Polygon, MultiPolygon, etc.)
    - Feature objects
    - FeatureCollection objects (uses first feature)

    Returns:
        A geometry dict suitable for rasterio operations

    Raises:
        ValidationError: If geometry cannot be extracted
    """
    if not isinstance(geojson_input, dict):
        raise ValidationError(f"Expected dict, got {type(geojson_input)}", field_name="aoi")

    geom_type = geojson_input.get("type")

    # Already a geometry object
    if geom_type in ["Polygon", "MultiPolygon", "GeometryCollection"]:
        return geojson_input

    # Feature object - extract geometry
    if geom_type == "Feature":
        geometry = geojson_input.get("geometry")
        if not geometry:
            raise ValidationError("Feature has no geometry property", field_name="aoi")
        return _extract_geometry(geometry)

    # FeatureCollection - use first feature
    if geom_type == "FeatureCollection":
        features = geojson_input.get("features", [])
        if not features:
            raise ValidationError("FeatureCollection has no features", field_name="aoi")
        return _extract_geometry(features[0])

    raise ValidationError(f"Unsupported AOI GeoJSON type: {geom_type}", field_name="aoi", invalid_value=geom_type)


def aoi_geometry(aoi: Any) -> BaseGeometry:
    """Normalizes an AOI (shapely geometry or GeoJSON) to a shapely geometry in EPSG:4326."""
    geom = aoi if isinstance(aoi, BaseGeometry) else shape(_extract_geometry(aoi))
    if geom.is_empty or geom.area == 0:
        raise ValidationError("AOI must be a non-empty polygon", field_name="aoi")
    return geom


def utm_crs_for(aoi: Any) -> CRS:
    """Returns the WGS84 UTM CRS of the zone containing the AOI centroid."""
    centroid = aoi_geometry(aoi).centroid
    lon, lat = centroid.x, centroid.y
    utm_zone = int((lon + 180) / 6) + 1
    epsg = (32600 if lat >= 0 else 32700) + utm_zone
    return CRS.from_epsg(epsg)


def aoi_to_crs(aoi: Any, dst_crs: CRS) -> dict:
    """Warps the AOI from EPSG:4326 to another CRS, as GeoJSON."""
    geom = mapping(aoi_geometry(aoi))
    if CRS.from_user_input(dst_crs) == WGS84:
        return geom
    return transform_geom(WGS84, dst_crs, geom)


def aoi_grid(aoi: Any, scale: float = 30.0, crs: Any = None) -> Grid:
    """
    Builds an analysis grid covering the AOI.

    Args:
        aoi: AOI geometry in EPSG:4326
        scale: Pixel size in metres (grid CRS units)
        crs: Target CRS; defaults to the UTM zone of the AOI centroid

    Returns:
        Grid snapped to multiples of ``scale``
    """
    dst_crs = CRS.from_user_input(crs) if crs is not None else utm_crs_for(aoi)
    west, south, east, north = shape(aoi_to_crs(aoi, dst_crs)).bounds

    # Snap outward so neighbouring runs share pixel edges
    west = math.floor(west / scale) * scale
    north = math.ceil(north / scale) * scale
    width = max(int(math.ceil((east - west) / scale)), 1)
    height = max(int(math.ceil((north - south) / scale)), 1)

    return Grid(
        crs=dst_crs,
        transform=from_origin(west, north, scale, scale),
        width=width,
        height=height,
    )


def aoi_pixel_mask(aoi: Any, grid: Grid) -> np.ndarray:
    """Boolean array, True where the pixel centre lies inside the AOI."""
    geom = aoi_to_crs(aoi, grid.crs)
    return geometry_mask(
        [geom],
        out_shape=grid.shape,
        transform=grid.transform,
        invert=True
    )


def check_pixel_limit(operation: str, pixel_count: int, max_pixels: float) -> None:
    """
    Fails fast when an operation would exceed its pixel ceiling.

    Raises:
        ResourceLimitExceeded
    """
    if max_pixels is None or max_pixels <= 0:
        raise ValidationError(
            f"{operation} requires a positive max_pixels",
            field_name="max_pixels",
            invalid_value=max_pixels
        )
    if pixel_count > max_pixels:
        raise ResourceLimitExceeded(operation, max_pixels, pixel_count)


def grid_footprint(grid: Grid) -> BaseGeometry:
    """Grid extent as a shapely polygon in EPSG:4326."""
    extent = mapping(box(*grid.bounds))
    if grid.crs == WGS84:
        return shape(extent)
    return shape(transform_geom(grid.crs, WGS84, extent))


def rescale_band(
    band: np.ma.MaskedArray,
    grid: Grid,
    scale: float
) -> Tuple[np.ma.MaskedArray, Grid]:
    """
    Resamples a categorical band to ``scale`` metres with nearest neighbour.

    Geographic grids and grids already at ``scale`` are returned unchanged.
    """
    res_x, res_y = grid.resolution
    if grid.is_geographic or (math.isclose(res_x, scale) and math.isclose(res_y, scale)):
        return band, grid

    west, south, east, north = grid.bounds
    dst_grid = Grid(
        crs=grid.crs,
        transform=from_origin(west, north, scale, scale),
        width=max(int(round((east - west) / scale)), 1),
        height=max(int(round((north - south) / scale)), 1),
    )

    nodata = 255
    src = np.ma.filled(band.astype(np.uint8), nodata)
    dst = np.full(dst_grid.shape, nodata, dtype=np.uint8)
    reproject(
        source=src,
        destination=dst,
        src_transform=grid.transform,
        src_crs=grid.crs,
        src_nodata=nodata,
        dst_transform=dst_grid.transform,
        dst_crs=dst_grid.crs,
        dst_nodata=nodata,
        resampling=Resampling.nearest
    )
    return np.ma.masked_equal(dst, nodata), dst_grid


def transform_features(features: List[dict], src_crs: Any, dst_crs: Any = WGS84) -> List[dict]:
    """Warps the geometry of GeoJSON-like features to another CRS."""
    results = []
    for feat in features:
        results.append({
            "type": "Feature",
            "properties": dict(feat.get("properties", {})),
            "geometry": transform_geom(src_crs, dst_crs, feat["geometry"])
        })
    return results
