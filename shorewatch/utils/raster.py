"""
Raster Model for ShoreWatch

Immutable multi-band rasters on a shared analysis grid.
Pixel validity is carried by numpy masked arrays (mask True = no data), never
by a sentinel value, so median and sum reductions cannot be corrupted by fill
values.
"""

from __future__ import annotations
import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from rasterio.windows import Window
from rasterio import windows
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from shorewatch.exceptions import MissingBandError, ValidationError

# Composite and index bands. 16-bit DNs and their medians are exact in float32
COMPOSITE_DTYPE = np.float32


@dataclass(frozen=True)
class Grid:
    """Pixel lattice shared by every raster of an analysis run."""
    crs: CRS
    transform: Affine
    width: int
    height: int

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def size(self) -> int:
        return self.width * self.height

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(west, south, east, north) in the grid CRS."""
        return array_bounds(self.height, self.width, self.transform)

    @property
    def resolution(self) -> Tuple[float, float]:
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def is_geographic(self) -> bool:
        return bool(self.crs.is_geographic)

    def sub_grid(self, window: Window) -> "Grid":
        """Returns the grid covering a window of this grid."""
        return Grid(
            crs=self.crs,
            transform=windows.transform(window, self.transform),
            width=int(window.width),
            height=int(window.height),
        )

    def tiles(self, tile_size: Optional[int] = None) -> Iterator[Window]:
        """
        Yields windows that tile the grid row by row.

        Args:
            tile_size: Tile edge in pixels. None yields one full-grid window.
        """
        if tile_size is None:
            yield Window(0, 0, self.width, self.height)
            return

        for row_off in range(0, self.height, tile_size):
            for col_off in range(0, self.width, tile_size):
                yield Window(
                    col_off,
                    row_off,
                    min(tile_size, self.width - col_off),
                    min(tile_size, self.height - row_off),
                )

    def aligned_with(self, other: "Grid") -> bool:
        return (
            self.crs == other.crs
            and self.transform.almost_equals(other.transform)
            and self.shape == other.shape
        )


def _as_masked(data: Any, shape: Tuple[int, int]) -> np.ma.MaskedArray:
    """Wraps data as a masked array with a full boolean mask of the given shape."""
    band = np.ma.asarray(data)
    if band.shape != shape:
        raise ValidationError(
            f"Band shape {band.shape} does not match grid shape {shape}",
            field_name="shape",
            invalid_value=band.shape
        )
    return np.ma.MaskedArray(band.data, mask=np.ma.getmaskarray(band).copy())


@dataclass(frozen=True)
class Raster:
    """
    A multi-band raster. Every operation returns a new Raster; band arrays are
    never modified in place.
    """
    bands: Dict[str, np.ma.MaskedArray]
    grid: Grid
    acquired_at: Optional[datetime] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    image_id: Optional[str] = None

    def __post_init__(self):
        checked = {name: _as_masked(data, self.grid.shape) for name, data in self.bands.items()}
        object.__setattr__(self, "bands", checked)

    @classmethod
    def from_arrays(
        cls,
        arrays: Dict[str, np.ndarray],
        grid: Grid,
        nodata: Optional[float] = None,
        **kwargs
    ) -> "Raster":
        """
        Builds a raster from plain arrays.

        Args:
            arrays: Band name to 2D array (masked arrays keep their mask)
            grid: Grid the arrays are on
            nodata: Optional source fill value to mask while wrapping
        """
        bands = {}
        for name, data in arrays.items():
            band = np.ma.asarray(data)
            if nodata is not None:
                band = np.ma.masked_where(band.data == nodata, band)
            bands[name] = band
        return cls(bands=bands, grid=grid, **kwargs)

    @classmethod
    def empty(
        cls,
        grid: Grid,
        band_names: Sequence[str],
        dtype: Any = COMPOSITE_DTYPE,
        **kwargs
    ) -> "Raster":
        """Builds a raster whose every pixel is invalid."""
        bands = {
            name: np.ma.MaskedArray(
                np.zeros(grid.shape, dtype=dtype),
                mask=np.ones(grid.shape, dtype=bool)
            )
            for name in band_names
        }
        return cls(bands=bands, grid=grid, **kwargs)

    @property
    def band_names(self) -> List[str]:
        return list(self.bands)

    def band(self, name: str) -> np.ma.MaskedArray:
        if name not in self.bands:
            raise MissingBandError(
                f"Band {name} not found",
                band_name=name,
                image_id=self.image_id
            )
        return self.bands[name]

    def select(
        self,
        names: Sequence[str],
        new_names: Optional[Sequence[str]] = None
    ) -> "Raster":
        """
        Keeps only the named bands, optionally renaming them.

        Raises:
            MissingBandError if any requested band is absent
        """
        new_names = list(new_names) if new_names is not None else list(names)
        if len(new_names) != len(names):
            raise ValidationError(
                "select() needs one new name per selected band",
                field_name="new_names",
                invalid_value=new_names
            )
        bands = {new: self.band(old) for old, new in zip(names, new_names)}
        return replace(self, bands=bands)

    def add_bands(self, new_bands: Dict[str, np.ma.MaskedArray]) -> "Raster":
        """Appends bands; a band with an existing name replaces it."""
        bands = dict(self.bands)
        bands.update(new_bands)
        return replace(self, bands=bands)

    def update_mask(self, valid: np.ndarray) -> "Raster":
        """Invalidates every band wherever ``valid`` is False."""
        invalid = ~np.asarray(valid, dtype=bool)
        bands = {
            name: np.ma.MaskedArray(band.data, mask=np.ma.getmaskarray(band) | invalid)
            for name, band in self.bands.items()
        }
        return replace(self, bands=bands)

    def self_mask(self, name: str) -> "Raster":
        """Single-band raster of ``name`` with zero pixels masked out."""
        band = self.band(name)
        return replace(self, bands={name: np.ma.masked_equal(band, 0)})

    def clip(self, aoi: Any) -> "Raster":
        """Invalidates pixels whose centre falls outside the AOI."""
        from shorewatch.utils.spatial import aoi_pixel_mask

        return self.update_mask(aoi_pixel_mask(aoi, self.grid))

    def window(self, window: Window) -> "Raster":
        """Returns the part of the raster covered by a grid window."""
        rows, cols = window.toslices()
        bands = {name: band[rows, cols] for name, band in self.bands.items()}
        return replace(self, bands=bands, grid=self.grid.sub_grid(window))

    def set(self, **properties) -> "Raster":
        """Returns a copy with extra metadata properties."""
        merged = dict(self.properties)
        merged.update(properties)
        return replace(self, properties=merged)

    def is_fully_masked(self) -> bool:
        return all(np.ma.count(band) == 0 for band in self.bands.values())


def paste_window(
    target: Dict[str, np.ma.MaskedArray],
    grid: Grid,
    window: Window,
    tile: Raster
) -> None:
    """
    Writes the bands of a window-sized raster into full-grid masked arrays.

    Bands missing from ``target`` are allocated fully masked on first use,
    with the tile's dtype.
    """
    rows, cols = window.toslices()
    for name, band in tile.bands.items():
        if name not in target:
            target[name] = np.ma.MaskedArray(
                np.zeros(grid.shape, dtype=band.dtype),
                mask=np.ones(grid.shape, dtype=bool)
            )
        target[name][rows, cols] = band
