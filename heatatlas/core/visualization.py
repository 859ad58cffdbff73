"""
HeatAtlas visualization parameters.

Fixed min/max/palette per metric. Shared by the tile endpoints and by the
legends drawn into the report document.
"""

from typing import Dict, List

THERMAL_PALETTE: List[str] = [
    "040274", "040281", "0502a3", "0502b8", "0502ce", "0502e6",
    "0602ff", "235cb1", "307ef3", "269db1", "30c8e2", "32d3ef",
    "3be285", "3ff38f", "86e26f", "3ae237", "b5e22e", "d6e21f",
    "fff705", "ffd611", "ffb613", "ff8b13", "ff6e08", "ff500d",
    "ff0000", "de0101", "c21301", "a71001", "911003",
]

DIVERGING_PALETTE: List[str] = [
    "313695", "74add1", "fed976", "feb24c", "fd8d3c", "fc4e2a", "e31a1c", "b10026",
]

METRIC_VIS_PARAMS: Dict[str, Dict] = {
    "ndvi": {"min": -1, "max": 1, "palette": ["blue", "white", "green"]},
    "ndbi": {"min": -1, "max": 1, "palette": ["white", "orange", "red"]},
    "lst": {"min": 7, "max": 50, "palette": THERMAL_PALETTE},
    "uhi": {"min": -4, "max": 4, "palette": DIVERGING_PALETTE},
    "utfvi": {"min": -1, "max": 0.3, "palette": DIVERGING_PALETTE},
}

METRIC_DISPLAY_NAMES: Dict[str, str] = {
    "ndvi": "Normalized Difference Vegetation Index",
    "ndbi": "Normalized Difference Built-up Index",
    "lst": "Land Surface Temperature",
    "uhi": "Urban Heat Island Index",
    "utfvi": "Urban Thermal Field Variance Index",
}

METRIC_UNITS: Dict[str, str] = {
    "ndvi": "",
    "ndbi": "",
    "lst": "°C",
    "uhi": "",
    "utfvi": "",
}

# Dynamic World label order (0..8)
LAND_COVER_CLASSES: List[str] = [
    "Water",
    "Trees",
    "Grass",
    "Flooded vegetation",
    "Crops",
    "Shrub & scrub",
    "Built-up",
    "Bare ground",
    "Snow & ice",
]

LAND_COVER_PALETTE: List[str] = [
    "419BDF", "397D49", "88B053", "7A87C6", "E49635", "DFC35A", "C4281B", "A59B8F", "B39FE1",
]

LAND_COVER_VIS_PARAMS: Dict = {"min": 0, "max": 8, "palette": LAND_COVER_PALETTE}


def vis_params_for(metric_id: str) -> Dict:
    return METRIC_VIS_PARAMS.get(metric_id.lower(), {})


def display_name(metric_id: str) -> str:
    return METRIC_DISPLAY_NAMES.get(metric_id.lower(), metric_id.upper())
