"""
STAC Imagery Source for ShoreWatch

Searches Landsat Collection 2 Level-2 scenes on the Planetary Computer and
exposes them as a lazy ImageCollection. No pixels are read until the
collection is reduced; each scene is then warped into the analysis grid one
window at a time.
"""

from __future__ import annotations
import threading
import urllib.parse
import requests
import pystac
import rasterio
from pystac.utils import str_to_datetime
from rasterio.enums import Resampling
from rasterio.errors import RasterioIOError
from rasterio.vrt import WarpedVRT
from rasterio.windows import Window
from requests.adapters import HTTPAdapter
from shapely.geometry import shape
from urllib3.util.retry import Retry
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from shorewatch.config import STAC_CONFIG
from shorewatch.exceptions import ImagerySourceError, ValidationError
from shorewatch.utils.collection import ImageCollection, ImageFn
from shorewatch.utils.preprocess import preprocess_collection
from shorewatch.utils.raster import Grid, Raster
from shorewatch.utils.sensors import QA_BAND, SensorFamily
from shorewatch.utils.spatial import aoi_geometry, grid_footprint


def _stac_datetime(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _utc(dt: datetime) -> datetime:
    """Timezone-aware UTC datetime; naive input is taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def acquired_at(item: pystac.Item) -> datetime:
    """Item acquisition time as a naive UTC datetime."""
    dt = item.datetime
    if dt is None:
        dt = str_to_datetime(item.properties["start_datetime"])
    return _utc(dt).replace(tzinfo=None)


def band_hrefs(item: pystac.Item) -> Dict[str, str]:
    """
    Maps native band names (``SR_B4``, ``QA_PIXEL``, ...) to asset hrefs.

    The name comes from the asset's single ``eo:bands`` entry when present,
    otherwise from the upper-cased asset key.
    """
    hrefs = {}
    for key, asset in item.assets.items():
        if not asset.media_type or "tiff" not in asset.media_type:
            continue
        eo_bands = asset.extra_fields.get("eo:bands") or []
        names = [b.get("name") for b in eo_bands if b.get("name")]
        name = names[0] if len(names) == 1 else key.upper()
        hrefs[name] = asset.href
    return hrefs


def build_session(max_retries: Optional[int] = None, backoff_factor: Optional[float] = None) -> requests.Session:
    """Session that retries transient HTTP failures with exponential backoff."""
    if max_retries is None:
        max_retries = STAC_CONFIG["MAX_RETRIES"]
    if backoff_factor is None:
        backoff_factor = STAC_CONFIG["BACKOFF_FACTOR"]

    retry = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "POST"],
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class StacImagerySource:
    """Imagery Source backed by a STAC API search endpoint."""

    def __init__(
        self,
        catalog_url: Optional[str] = None,
        collection: Optional[str] = None,
        session: Optional[requests.Session] = None,
        sign_assets: Optional[bool] = None
    ):
        self.catalog_url = (catalog_url or STAC_CONFIG["CATALOG_URL"]).rstrip("/")
        self.collection = collection or STAC_CONFIG["COLLECTION"]
        self.session = session or build_session()
        self.sign_assets = STAC_CONFIG["SIGN_ASSETS"] if sign_assets is None else sign_assets
        self._signed: Dict[str, Tuple[str, Optional[datetime]]] = {}
        self._lock = threading.RLock()

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            with self._lock:
                resp = self.session.request(method, url, timeout=STAC_CONFIG["TIMEOUT_SECONDS"], **kwargs)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ImagerySourceError(
                "Imagery catalog request failed",
                url=url,
                status_code=status,
                original_error=e
            ) from e
        except requests.exceptions.RequestException as e:
            raise ImagerySourceError(
                f"Imagery catalog unreachable: {e}",
                url=url,
                original_error=e
            ) from e

    def search(
        self,
        family: SensorFamily,
        aoi: Any,
        start: datetime,
        end: datetime,
        max_items: Optional[int] = None
    ) -> "StacCollection":
        """
        Finds scenes of one sensor family intersecting the AOI in [start, end).

        Returns:
            Lazy StacCollection (no pixel data fetched yet)
        """
        if max_items is None:
            max_items = STAC_CONFIG["MAX_ITEMS"]

        body: Dict[str, Any] = {
            "collections": [self.collection],
            "bbox": list(aoi_geometry(aoi).bounds),
            "datetime": f"{_stac_datetime(start)}/{_stac_datetime(end)}",
            "query": {"platform": {"in": [family.platform]}},
            "limit": STAC_CONFIG["PAGE_SIZE"],
        }

        url = f"{self.catalog_url}/search"
        print(f"Searching {self.collection} for {family.platform} [{family.collection_id}] ({start:%Y-%m-%d} to {end:%Y-%m-%d})...")

        items: List[pystac.Item] = []
        page = self._request("POST", url, json=body)
        while True:
            for feature in page.get("features", []):
                items.append(pystac.Item.from_dict(feature))

            next_link = next(
                (link for link in page.get("links", []) if link.get("rel") == "next"),
                None
            )
            if next_link is None or len(items) >= max_items:
                break

            if next_link.get("method", "GET").upper() == "POST":
                next_body = next_link.get("body", body)
                if next_link.get("merge"):
                    next_body = {**body, **next_body}
                page = self._request("POST", next_link["href"], json=next_body)
            else:
                page = self._request("GET", next_link["href"])

        items = items[:max_items]
        print(f"  ✓ {len(items)} {family.platform} scene(s) found")
        return StacCollection(items, family, self)

    def sign(self, href: str) -> str:
        """
        Returns a readable URL for an asset, signing it when required.

        Signed URLs are reused until ``SIGN_EXPIRY_MARGIN_SECONDS`` before the
        ``msft:expiry`` the sign endpoint reports; after that the asset is
        signed again. Safe to call from several threads.
        """
        if not self.sign_assets or not href.startswith("http"):
            return href

        with self._lock:
            cached = self._signed.get(href)
            if cached is not None and not self._expiring(cached[1]):
                return cached[0]

            # PC requires signing the URL with proper encoding
            encoded_url = urllib.parse.quote(href, safe='')
            sign_url = f"{STAC_CONFIG['SIGN_URL']}?href={encoded_url}"
            signed = self._request("GET", sign_url)
            expiry = signed.get("msft:expiry")
            self._signed[href] = (
                signed.get("href", href),
                _utc(str_to_datetime(expiry)) if expiry else None,
            )
            return self._signed[href][0]

    @staticmethod
    def _expiring(expiry: Optional[datetime]) -> bool:
        if expiry is None:
            return False
        margin = timedelta(seconds=STAC_CONFIG["SIGN_EXPIRY_MARGIN_SECONDS"])
        return datetime.now(timezone.utc) + margin >= expiry


def read_window(href: str, grid: Grid, window: Window):
    """
    Reads one band into a window of the analysis grid.

    Source nodata and pixels outside the scene footprint come back masked.
    """
    target = grid.sub_grid(window)
    with rasterio.Env(GDAL_HTTP_MAX_RETRY=STAC_CONFIG["MAX_RETRIES"], GDAL_HTTP_RETRY_DELAY=STAC_CONFIG["BACKOFF_FACTOR"]):
        with rasterio.open(href) as src:
            with WarpedVRT(
                src,
                crs=target.crs,
                transform=target.transform,
                width=target.width,
                height=target.height,
                resampling=Resampling.nearest
            ) as vrt:
                return vrt.read(1, masked=True)


class StacCollection(ImageCollection):
    """Lazy collection of STAC items of one sensor family."""

    def __init__(
        self,
        items: Sequence[pystac.Item],
        family: SensorFamily,
        source: StacImagerySource,
        transforms: Sequence[ImageFn] = ()
    ):
        super().__init__(transforms)
        self._items: List[pystac.Item] = list(items)
        self.family = family
        self.source = source

    @property
    def items(self) -> List[pystac.Item]:
        return list(self._items)

    def filter_bounds(self, aoi: Any) -> "StacCollection":
        region = aoi_geometry(aoi)
        kept = [item for item in self._items if item.geometry and shape(item.geometry).intersects(region)]
        return StacCollection(kept, self.family, self.source, self._transforms)

    def filter_date(self, start: datetime, end: datetime) -> "StacCollection":
        kept = [item for item in self._items if start <= acquired_at(item) < end]
        return StacCollection(kept, self.family, self.source, self._transforms)

    def size(self) -> int:
        # Scenes later dropped by mapped functions are still counted
        return len(self._items)

    def _iter_source(self, grid: Optional[Grid], window: Optional[Window]) -> Iterator[Raster]:
        if grid is None:
            raise ValidationError("StacCollection needs an analysis grid to read pixels", field_name="grid")
        if window is None:
            window = Window(0, 0, grid.width, grid.height)

        footprint = grid_footprint(grid.sub_grid(window))
        native, _ = self.family.native_bands
        wanted = native + [QA_BAND]

        for item in self._items:
            if item.geometry and not shape(item.geometry).intersects(footprint):
                continue

            hrefs = band_hrefs(item)
            bands = {}
            for name in wanted:
                # Missing bands are left out; the preprocessor drops the scene
                if name not in hrefs:
                    continue
                try:
                    bands[name] = read_window(self.source.sign(hrefs[name]), grid, window)
                except RasterioIOError as e:
                    raise ImagerySourceError(
                        f"Failed to read {name} of {item.id}",
                        url=hrefs[name],
                        original_error=e
                    ) from e

            yield Raster(
                bands=bands,
                grid=grid.sub_grid(window),
                acquired_at=acquired_at(item),
                image_id=item.id,
                properties={"platform": self.family.platform},
            )


def load_landsat_collections(
    source: StacImagerySource,
    aoi: Any,
    start: datetime,
    end: datetime,
    families: Optional[Sequence[SensorFamily]] = None
) -> Dict[SensorFamily, ImageCollection]:
    """
    Searches and preprocesses one collection per Landsat family.

    Returns:
        Dict mapping each family to its harmonized (cloud-masked, renamed)
        collection
    """
    families = list(families) if families is not None else list(SensorFamily)
    collections = {}
    for family in families:
        raw = source.search(family, aoi, start, end).filter_bounds(aoi)
        collections[family] = preprocess_collection(raw, family)
    return collections
