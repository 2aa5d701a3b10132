import numpy as np

from shorewatch.utils.raster import COMPOSITE_DTYPE, Raster


def normalized_difference(a: np.ma.MaskedArray, b: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """
    (a - b) / (a + b) with invalid output wherever either input is invalid or
    the denominator is zero.
    """
    a = np.ma.asarray(a).astype(COMPOSITE_DTYPE)
    b = np.ma.asarray(b).astype(COMPOSITE_DTYPE)
    denominator = a + b

    with np.errstate(divide='ignore', invalid='ignore'):
        nd = (a - b) / denominator

    # Zero denominators become no-data, not 0 or inf
    return np.ma.masked_where(np.ma.getdata(denominator) == 0, nd)


def calculate_ndvi(red_band: np.ma.MaskedArray, nir_band: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """Calculates Normalized Difference Vegetation Index (NDVI)."""
    return normalized_difference(nir_band, red_band)


def calculate_ndwi(green_band: np.ma.MaskedArray, nir_band: np.ma.MaskedArray) -> np.ma.MaskedArray:
    """Calculates Normalized Difference Water Index (NDWI) for water detection."""
    return normalized_difference(green_band, nir_band)


def add_indices(image: Raster) -> Raster:
    """Appends NDVI and NDWI bands to a harmonized composite."""
    ndvi = calculate_ndvi(image.band("Red"), image.band("NIR"))
    ndwi = calculate_ndwi(image.band("Green"), image.band("NIR"))
    return image.add_bands({"NDVI": ndvi, "NDWI": ndwi})
