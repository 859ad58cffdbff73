"""Shared builders for HeatAtlas tests."""

from datetime import date

from heatatlas.schemas.analysis import Histogram, LayerStatistics, MetricLayer
from heatatlas.schemas.report import EnhancedReportData, ReportMetadataIn, ReportRequest
from heatatlas.services.report_service import enhance

# Small square over central Delhi, [lng, lat]
DELHI_RING = [
    [77.10, 28.60],
    [77.20, 28.60],
    [77.20, 28.70],
    [77.10, 28.70],
]

GEOMETRY = {"type": "Polygon", "coordinates": [DELHI_RING]}

LULC_ONLY = {"LULC": {"tileUrl": "https://tiles.example.com/lulc/{z}/{x}/{y}"}}


def make_layer(layer_id="lst", mean=41.17, minimum=30.5, maximum=52.25, std_dev=3.4, histogram=True):
    return MetricLayer(
        id=layer_id,
        name=layer_id.upper(),
        tile_url=f"https://tiles.example.com/{layer_id}/{{z}}/{{x}}/{{y}}",
        download_url=f"https://download.example.com/{layer_id}.tif",
        histogram=Histogram(
            histogram=[0, 4, 10, 6, 0],
            bucket_means=[29.0, 33.0, 41.0, 47.0, 52.0],
            bucket_min=27.0,
            bucket_width=5.0,
        ) if histogram else None,
        statistics=LayerStatistics(mean=mean, min=minimum, max=maximum, std_dev=std_dev),
    )


def make_report_request(layers=None, additional=None) -> ReportRequest:
    return ReportRequest(
        analysis_data={"layers": layers if layers is not None else [make_layer()]},
        additional_data=additional,
        metadata=ReportMetadataIn(
            geometry=GEOMETRY,
            start_date=date(2023, 6, 1),
            end_date=date(2023, 8, 31),
            year=2023,
        ),
    )


def make_enhanced(layers=None, additional=None) -> EnhancedReportData:
    return enhance(make_report_request(layers, additional))


def report_payload(additional=None) -> dict:
    """JSON body for POST /report/generate-report"""
    return {
        "analysisData": {"layers": [make_layer().model_dump(by_alias=True)]},
        "additionalData": additional,
        "metadata": {
            "geometry": GEOMETRY,
            "startDate": "2023-06-01",
            "endDate": "2023-08-31",
            "year": 2023,
        },
    }
