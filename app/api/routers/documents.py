import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, JSONResponse

from app.api.deps import get_jobs, get_pipeline, get_settings
from app.core.config import Settings
from app.core.pipeline import ItineraryPipeline
from app.models.domain import DownloadRequest
from app.services.convert import DOCX_MEDIA_TYPE
from app.services.jobs import DocumentJobs

logger = logging.getLogger("itinerary_server.documents")

router = APIRouter(tags=["Documents"])

MEDIA_TYPES = {".pdf": "application/pdf", ".docx": DOCX_MEDIA_TYPE}


@router.post("/api/download")
async def download_itinerary(
    request: DownloadRequest,
    pipeline: ItineraryPipeline = Depends(get_pipeline),
):
    """Runs the document pipeline and returns where the PDF can be fetched."""
    result = await pipeline.process(request.itinerary_id)
    return {
        "success": True,
        "message": "Itinerary processed successfully",
        "itineraryPath": f"/document/{result.document_path.name}",
    }


@router.post("/api/download/jobs", status_code=202)
async def start_download_job(
    request: DownloadRequest, jobs: DocumentJobs = Depends(get_jobs)
):
    job_id = jobs.submit(request.itinerary_id)
    return {
        "success": True,
        "jobId": job_id,
        "statusPath": f"/api/download/jobs/{job_id}",
    }


@router.get("/api/download/jobs/{job_id}")
async def get_download_job(job_id: str, jobs: DocumentJobs = Depends(get_jobs)):
    status = jobs.status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@router.delete("/api/download/jobs/{job_id}")
async def cancel_download_job(job_id: str, jobs: DocumentJobs = Depends(get_jobs)):
    if jobs.status(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"jobId": job_id, "cancelled": jobs.cancel(job_id)}


@router.get("/document/{filename}")
async def get_document(filename: str, settings: Settings = Depends(get_settings)):
    if Path(filename).name != filename:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid file name", "details": filename},
        )

    media_type = MEDIA_TYPES.get(Path(filename).suffix.lower())
    if media_type is None:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Unsupported file type",
                "details": "Only PDF and DOCX files are supported",
            },
        )

    file_path = settings.temp_store_dir / filename
    if not file_path.is_file():
        return JSONResponse(
            status_code=404,
            content={
                "error": "File not found",
                "details": "The requested document does not exist or has expired",
            },
        )

    logger.info(f"Serving document {filename}")
    return FileResponse(
        file_path,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
