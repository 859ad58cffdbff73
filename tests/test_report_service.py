"""
HeatAtlas - Report Assembler Tests
tests/test_report_service.py

Real artifact store and renderer in a temp directory; narrator and
downloader are mocks.
"""

import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from heatatlas.llm.orchestrator import build_fallback_insights
from heatatlas.schemas.analysis import AdditionalsResponse, LandCoverLayer
from heatatlas.schemas.common import ErrorInfo
from heatatlas.services.artifact_store import ArtifactStore
from heatatlas.services.document_renderer import DocumentRenderer, render_text
from heatatlas.services.report_service import ReportService, additional_file_name, analysis_file_name
from heatatlas.utils.exceptions import RenderingError, ReportGenerationError
from tests.factories import make_enhanced, make_layer, make_report_request

ADDITIONAL = {
    "LULC": {"downloadUrl": "https://download.example.com/lulc.tif"},
    "heatVulnerabilityZones": {"tileUrl": "https://tiles.example.com/hvi/{z}/{x}/{y}"},
}


async def fake_download(url, directory, file_name):
    if "fail" in url:
        return None
    path = Path(directory) / file_name
    path.write_bytes(b"II*\x00raster")
    return path


class TestFileNames(unittest.TestCase):

    def test_01_analysis(self):
        self.assertEqual(analysis_file_name("LST"), "LST_analysis.tif")
        self.assertEqual(analysis_file_name("ndvi"), "NDVI_analysis.tif")

    def test_02_additional(self):
        self.assertEqual(additional_file_name("LULC"), "Land_Use_Land_Cover_additional.tif")
        self.assertEqual(additional_file_name("heatVulnerabilityZones"), "Heat_Vulnerability_Zones_additional.tif")
        self.assertEqual(additional_file_name("surfaceAlbedo"), "Surface_Albedo_additional.tif")


class TestEnhance(unittest.TestCase):

    def test_01_additionals_response_forwarded_as_is(self):
        response = AdditionalsResponse(
            lulc=LandCoverLayer(tile_url="https://tiles.example.com/lulc/{z}/{x}/{y}",
                                download_url="https://download.example.com/lulc.tif"),
        )
        wire = response.model_dump(by_alias=True, exclude_none=True)
        self.assertIn("errors", wire)

        enhanced = make_enhanced(additional=wire)

        self.assertEqual(list(enhanced.additional_layers), ["LULC"])
        self.assertEqual(enhanced.statistics.additional_layers_processed, 1)

    def test_02_only_errors(self):
        wire = AdditionalsResponse(
            errors={"heatVulnerabilityZones": ErrorInfo(code="EMPTY_RESULT", message="No valid pixels")},
        ).model_dump(by_alias=True, exclude_none=True)

        enhanced = make_enhanced(additional=wire)

        self.assertEqual(enhanced.additional_layers, {})
        self.assertEqual(enhanced.statistics.additional_layers_processed, 0)
        self.assertNotIn("Supplementary", render_text(enhanced, build_fallback_insights(enhanced)))

    def test_03_empty_entries_dropped(self):
        enhanced = make_enhanced(additional={"LULC": {}, "errors": {}})
        self.assertEqual(enhanced.additional_layers, {})


class TestGenerateReport(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = ArtifactStore(root=self._tmp.name, retention_seconds=3600)
        self.narrator = MagicMock()
        self.narrator.narrate_all = AsyncMock(side_effect=lambda enhanced: build_fallback_insights(enhanced))
        self.downloader = MagicMock()
        self.downloader.download = AsyncMock(side_effect=fake_download)
        self.service = ReportService(
            store=self.store,
            narrator=self.narrator,
            renderer=DocumentRenderer(),
            downloader=self.downloader,
        )

    def tearDown(self):
        self.store.cancel_all()
        self._tmp.cleanup()

    async def test_01_archive_contents(self):
        result = await self.service.generate_report(make_report_request(additional=ADDITIONAL))

        report_id = result["report_id"]
        self.assertEqual(result["download_url"], f"/report/download-report/{report_id}")

        with zipfile.ZipFile(self.store.require_archive(report_id)) as archive:
            names = sorted(archive.namelist())
        self.assertEqual(names, [
            "UHI_Research_Report.html",
            "UHI_Research_Report.pdf",
            "rasters/LST_analysis.tif",
            "rasters/Land_Use_Land_Cover_additional.tif",
        ])

    async def test_02_status_after_success(self):
        result = await self.service.generate_report(make_report_request())
        status = self.service.status(result["report_id"])

        self.assertEqual(status["status"], "completed")
        self.assertTrue(status["ready"])
        self.assertGreater(status["size"], 0)
        self.assertEqual(status["download_url"], result["download_url"])

    async def test_03_downloads_are_sequential_and_ordered(self):
        layers = [make_layer("lst"), make_layer("ndvi")]
        await self.service.generate_report(make_report_request(layers=layers, additional=ADDITIONAL))

        file_names = [c.args[2] for c in self.downloader.download.await_args_list]
        self.assertEqual(file_names, ["LST_analysis.tif", "NDVI_analysis.tif", "Land_Use_Land_Cover_additional.tif"])

    async def test_04_failed_download_left_out(self):
        layer = make_layer("ndvi")
        layer.download_url = "https://download.example.com/fail.tif"
        result = await self.service.generate_report(make_report_request(layers=[make_layer("lst"), layer]))

        with zipfile.ZipFile(self.store.require_archive(result["report_id"])) as archive:
            rasters = [n for n in archive.namelist() if n.startswith("rasters/")]
        self.assertEqual(rasters, ["rasters/LST_analysis.tif"])

    async def test_05_narration_failure_uses_fallback(self):
        self.narrator.narrate_all = AsyncMock(side_effect=RuntimeError("provider exploded"))
        result = await self.service.generate_report(make_report_request())
        self.assertTrue(self.service.status(result["report_id"])["ready"])

    async def test_06_render_failure_marks_failed(self):
        self.service.renderer = MagicMock()
        self.service.renderer.render = AsyncMock(side_effect=RenderingError("Plain-text report could not be written"))

        with self.assertRaises(ReportGenerationError) as ctx:
            await self.service.generate_report(make_report_request())

        report_id = ctx.exception.details["report_id"]
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(self.service.status(report_id)["status"], "failed")
        self.assertIsNone(self.service.status(report_id)["download_url"])
        self.assertFalse((Path(self._tmp.name) / report_id).exists())

    async def test_07_unknown_report(self):
        status = self.service.status(self.store.new_report_id())
        self.assertEqual(status["status"], "not_found")
        self.assertIsNone(status["download_url"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
