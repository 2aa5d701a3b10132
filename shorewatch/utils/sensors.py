"""
Sensor Definitions for ShoreWatch

Landsat sensor families and the band tables that harmonize them into one
six-band schema. Adding a sensor means adding an enum member and, if its band
numbering is new, one more table.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, List, Tuple


# Harmonized band schema shared by every preprocessed image
CANONICAL_BANDS: List[str] = ["Blue", "Green", "Red", "NIR", "SWIR1", "SWIR2"]

QA_BAND = "QA_PIXEL"


class BandSchema(Enum):
    """Native band numbering of a group of sensors."""
    TM_ETM = "tm_etm"  # Landsat 5 TM, Landsat 7 ETM+
    OLI = "oli"        # Landsat 8/9 OLI


BAND_TABLES: Dict[BandSchema, Dict[str, str]] = {
    BandSchema.TM_ETM: {
        "SR_B1": "Blue",
        "SR_B2": "Green",
        "SR_B3": "Red",
        "SR_B4": "NIR",
        "SR_B5": "SWIR1",
        "SR_B7": "SWIR2",
    },
    BandSchema.OLI: {
        "SR_B2": "Blue",
        "SR_B3": "Green",
        "SR_B4": "Red",
        "SR_B5": "NIR",
        "SR_B6": "SWIR1",
        "SR_B7": "SWIR2",
    },
}


class SensorFamily(Enum):
    """
    Supported Landsat missions.

    Each value is (collection id, STAC platform, band schema,
    cloud-shadow QA bit, cloud QA bit).
    """
    LANDSAT_5 = ("LANDSAT/LT05/C02/T1_L2", "landsat-5", BandSchema.TM_ETM, 3, 5)
    LANDSAT_7 = ("LANDSAT/LE07/C02/T1_L2", "landsat-7", BandSchema.TM_ETM, 3, 5)
    LANDSAT_8 = ("LANDSAT/LC08/C02/T1_L2", "landsat-8", BandSchema.OLI, 3, 5)
    LANDSAT_9 = ("LANDSAT/LC09/C02/T1_L2", "landsat-9", BandSchema.OLI, 3, 5)

    def __init__(self, collection_id, platform, schema, shadow_bit, cloud_bit):
        self.collection_id = collection_id
        self.platform = platform
        self.schema = schema
        self.shadow_bit = shadow_bit
        self.cloud_bit = cloud_bit

    @property
    def band_table(self) -> Dict[str, str]:
        return BAND_TABLES[self.schema]

    @property
    def native_bands(self) -> Tuple[List[str], List[str]]:
        """(native names, canonical names) in canonical order."""
        by_canonical = {canonical: native for native, canonical in self.band_table.items()}
        native = [by_canonical[name] for name in CANONICAL_BANDS]
        return native, list(CANONICAL_BANDS)
