"""Report Endpoints"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from heatatlas.schemas.report import ReportRequest, ReportResponse, ReportStatusResponse
from heatatlas.services.report_service import ReportService, get_report_service
from heatatlas.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/generate-report", response_model=ReportResponse)
async def generate_report(
    request: ReportRequest,
    service: ReportService = Depends(get_report_service),
):
    """Narrate, render and package a report; returns its id and download path"""
    result = await service.generate_report(request)
    return ReportResponse(report_id=result["report_id"], download_url=result["download_url"])


@router.get("/download-report/{report_id}")
async def download_report(report_id: str, service: ReportService = Depends(get_report_service)):
    """Archive bytes, or 404 once the report is gone"""
    archive = service.store.require_archive(report_id)
    logger.info("Report download", report_id=report_id, size=archive.stat().st_size)
    return FileResponse(
        archive,
        media_type="application/zip",
        filename=f"UHI_Analysis_Report_{report_id[:8]}.zip",
    )


@router.get("/report-status/{report_id}", response_model=ReportStatusResponse)
async def report_status(report_id: str, service: ReportService = Depends(get_report_service)):
    status = service.status(report_id)
    return ReportStatusResponse(
        report_id=report_id,
        status=status["status"],
        ready=status["ready"],
        size=status["size"],
        download_url=status["download_url"],
    )
