"""
Image Collections for ShoreWatch

A lazy, filterable, mappable, reducible sequence of rasters. The analysis
core only talks to the ImageCollection interface; the in-memory backend below
serves small AOIs and tests, the STAC backend (stac_source.py) streams scenes
window by window.
"""

from __future__ import annotations
import copy
import numpy as np
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from rasterio.windows import Window

from shorewatch.exceptions import ValidationError
from shorewatch.utils.raster import COMPOSITE_DTYPE, Grid, Raster, paste_window

ImageFn = Callable[[Raster], Optional[Raster]]


class ImageCollection(ABC):
    """
    Base class for image collections.

    Filters work on image metadata (acquisition time, footprint) and are
    applied before any mapped function. Mapped functions are recorded and
    only run when images are iterated; a function returning None drops the
    image. Mapped functions must work pixel by pixel so they can be applied to
    any window of an image.
    """

    def __init__(self, transforms: Sequence[ImageFn] = ()):
        self._transforms: Tuple[ImageFn, ...] = tuple(transforms)

    @abstractmethod
    def filter_bounds(self, aoi: Any) -> "ImageCollection":
        """Keeps images whose footprint intersects the AOI."""

    @abstractmethod
    def filter_date(self, start: datetime, end: datetime) -> "ImageCollection":
        """Keeps images acquired in [start, end)."""

    @abstractmethod
    def _iter_source(self, grid: Optional[Grid], window: Optional[Window]) -> Iterator[Raster]:
        """Yields source images (before mapped functions) for a window."""

    @abstractmethod
    def size(self) -> int:
        """Number of images the collection would yield."""

    def map(self, fn: ImageFn) -> "ImageCollection":
        """Returns a new collection with ``fn`` applied to every image."""
        clone = copy.copy(self)
        clone._transforms = self._transforms + (fn,)
        return clone

    def merge(self, other: "ImageCollection") -> "ImageCollection":
        return MergedCollection([self, other])

    def _apply(self, image: Raster) -> Optional[Raster]:
        for fn in self._transforms:
            image = fn(image)
            if image is None:
                return None
        return image

    def iter_images(
        self,
        grid: Optional[Grid] = None,
        window: Optional[Window] = None
    ) -> Iterator[Raster]:
        """
        Yields mapped images, optionally restricted to a window of ``grid``.
        """
        for image in self._iter_source(grid, window):
            result = self._apply(image)
            if result is not None:
                yield result

    def __iter__(self) -> Iterator[Raster]:
        return self.iter_images()

    def median_window(
        self,
        grid: Grid,
        window: Window,
        band_names: Sequence[str]
    ) -> Raster:
        """
        Per-pixel, per-band median over valid observations in one window.

        Pixels with no valid observation stay masked. Only this window of
        every image is held in memory.

        Returns:
            float32 Raster on the window's sub-grid with
            ``properties["observations"]`` holding the per-pixel count of
            contributing images for the first band
        """
        sub = grid.sub_grid(window)
        images = list(self.iter_images(grid, window))
        if not images:
            return Raster.empty(sub, band_names, dtype=COMPOSITE_DTYPE).set(
                observations=np.zeros(sub.shape, dtype=np.int32)
            )

        bands = {}
        observations = None
        for name in band_names:
            stack = np.ma.stack([image.band(name) for image in images])
            reduced = np.ma.median(stack, axis=0)
            bands[name] = np.ma.MaskedArray(
                np.ma.getdata(reduced).astype(COMPOSITE_DTYPE),
                mask=np.ma.getmaskarray(reduced)
            )
            if observations is None:
                observations = stack.count(axis=0).astype(np.int32)

        return Raster(bands=bands, grid=sub, properties={"observations": observations})

    def median(
        self,
        grid: Grid,
        band_names: Sequence[str],
        tile_size: Optional[int] = None
    ) -> Raster:
        """
        Full-grid median, assembled from ``median_window`` over tiles of
        ``tile_size`` pixels.

        Returns:
            float32 Raster on ``grid`` with ``properties["observations"]``
        """
        bands: Dict[str, np.ma.MaskedArray] = {}
        observations = np.zeros(grid.shape, dtype=np.int32)

        for window in grid.tiles(tile_size):
            tile = self.median_window(grid, window, band_names)
            paste_window(bands, grid, window, tile)
            rows, cols = window.toslices()
            observations[rows, cols] = tile.properties["observations"]

        return Raster(bands=bands, grid=grid, properties={"observations": observations})


class InMemoryCollection(ImageCollection):
    """Collection backed by a list of rasters that share one grid."""

    def __init__(self, images: Sequence[Raster], transforms: Sequence[ImageFn] = ()):
        super().__init__(transforms)
        self._images: List[Raster] = list(images)

    def filter_bounds(self, aoi: Any) -> "InMemoryCollection":
        from shorewatch.utils.spatial import aoi_geometry, grid_footprint

        region = aoi_geometry(aoi)
        kept = [img for img in self._images if grid_footprint(img.grid).intersects(region)]
        return InMemoryCollection(kept, self._transforms)

    def filter_date(self, start: datetime, end: datetime) -> "InMemoryCollection":
        kept = [
            img for img in self._images
            if img.acquired_at is not None and start <= img.acquired_at < end
        ]
        return InMemoryCollection(kept, self._transforms)

    def _iter_source(self, grid: Optional[Grid], window: Optional[Window]) -> Iterator[Raster]:
        for image in self._images:
            if grid is not None and not image.grid.aligned_with(grid):
                raise ValidationError(
                    f"Image {image.image_id} is not on the analysis grid",
                    field_name="grid"
                )
            yield image.window(window) if window is not None else image

    def size(self) -> int:
        if not self._transforms:
            return len(self._images)
        return sum(1 for _ in self.iter_images())


class MergedCollection(ImageCollection):
    """Union of several collections. No deduplication: overlaps are kept."""

    def __init__(self, members: Sequence[ImageCollection], transforms: Sequence[ImageFn] = ()):
        super().__init__(transforms)
        self._members: List[ImageCollection] = list(members)

    @property
    def members(self) -> List[ImageCollection]:
        return list(self._members)

    def filter_bounds(self, aoi: Any) -> "MergedCollection":
        return MergedCollection([m.filter_bounds(aoi) for m in self._members], self._transforms)

    def filter_date(self, start: datetime, end: datetime) -> "MergedCollection":
        return MergedCollection([m.filter_date(start, end) for m in self._members], self._transforms)

    def _iter_source(self, grid: Optional[Grid], window: Optional[Window]) -> Iterator[Raster]:
        # Members apply their own mapped functions first
        for member in self._members:
            yield from member.iter_images(grid, window)

    def size(self) -> int:
        if not self._transforms:
            return sum(m.size() for m in self._members)
        return sum(1 for _ in self.iter_images())


def merge_collections(*collections: ImageCollection) -> ImageCollection:
    """
    Unions harmonized collections into one logical collection.

    Every member image is preserved: overlapping sensors add samples to the
    median composite.
    """
    if not collections:
        raise ValidationError("merge_collections() needs at least one collection")
    if len(collections) == 1:
        return collections[0]
    return MergedCollection(collections)
