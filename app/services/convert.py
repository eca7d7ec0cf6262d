"""
DOCX -> PDF conversion through the pdf24 file tools API.

Job lifecycle:

    UPLOADED -> CONVERTING -> DONE | FAILED
    CONVERTING -> CONVERTING      (re-poll)
    CONVERTING -> TIMED_OUT       (attempts exhausted)
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

import aiohttp

from app.core.errors import (
    ConversionTimeoutError,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
)
from app.services.snapshot import open_session

logger = logging.getLogger("itinerary_server.convert")

DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
ORIGIN_HEADERS = {
    "Origin": "https://tools.pdf24.org",
    "Referer": "https://tools.pdf24.org/en/docx-to-pdf",
}
CHUNK_SIZE = 64 * 1024


class JobState(str, Enum):
    UPLOADED = "uploaded"
    CONVERTING = "converting"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class ConversionJob:
    source: Path
    job_id: Optional[str] = None
    state: Optional[JobState] = None
    attempts: int = 0

    def move_to(self, state: JobState) -> None:
        logger.debug(f"Conversion of {self.source.name}: {self.state} -> {state.value}")
        self.state = state


class ConversionService(Protocol):
    async def convert(self, docx_path: Path, pdf_path: Path) -> Path: ...


class Pdf24Converter:
    def __init__(
        self,
        base_url: str = "https://filetools27.pdf24.org/client.php",
        poll_interval: float = 2.0,
        max_attempts: int = 30,
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.session = session

    async def convert(
        self,
        docx_path: Union[str, Path],
        pdf_path: Union[str, Path],
        job: Optional[ConversionJob] = None,
    ) -> Path:
        """
        Convert `docx_path` into `pdf_path`. Pass a `ConversionJob` to observe
        its state; each call otherwise tracks its own. The PDF only appears at
        `pdf_path` once it has been downloaded completely.
        """
        docx_path = Path(docx_path)
        pdf_path = Path(pdf_path)

        if not docx_path.exists():
            raise NotFoundError(f"Input file not found: {docx_path}")
        if pdf_path.suffix.lower() != ".pdf":
            raise ValidationError(
                "Output path must be a PDF file (e.g., ./filename.pdf)"
            )

        job = job or ConversionJob(source=docx_path)
        try:
            async with open_session(self.session, self.timeout) as session:
                file_info = await self._upload(session, docx_path)
                job.move_to(JobState.UPLOADED)
                job.job_id = await self._start_job(session, file_info)
                job.move_to(JobState.CONVERTING)
                await self._wait_for_job(session, job)
                await self._download(session, job.job_id, pdf_path)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            job.move_to(JobState.FAILED)
            logger.error(f"DOCX to PDF conversion failed: {e}")
            raise RemoteServiceError(f"DOCX to PDF conversion failed: {e}") from e

        logger.info(f"PDF written to {pdf_path}")
        return pdf_path

    async def _upload(self, session, docx_path: Path) -> dict:
        form = aiohttp.FormData()
        with open(docx_path, "rb") as f:
            form.add_field(
                "file",
                f.read(),
                filename=docx_path.name,
                content_type=DOCX_MEDIA_TYPE,
            )
        async with session.post(
            f"{self.base_url}?action=upload",
            data=form,
            headers={**ORIGIN_HEADERS, "X-Requested-With": "XMLHttpRequest"},
        ) as resp:
            if resp.status != 200:
                raise RemoteServiceError(f"File upload failed with HTTP {resp.status}")
            files = await resp.json(content_type=None)
        if not isinstance(files, list) or not files:
            raise RemoteServiceError("File upload failed")
        logger.info(f"Uploaded {docx_path.name} for conversion")
        return files[0]

    async def _start_job(self, session, file_info: dict) -> str:
        body = {
            "files": [
                {
                    key: file_info.get(key)
                    for key in ("file", "host", "name", "size", "ctime")
                }
            ],
            "options": {"usePdfa": False},
        }
        async with session.post(
            f"{self.base_url}?action=convertToPdf",
            json=body,
            headers=ORIGIN_HEADERS,
        ) as resp:
            if resp.status != 200:
                raise RemoteServiceError(
                    f"Conversion failed to start (HTTP {resp.status})"
                )
            data = await resp.json(content_type=None)
        job_id = data.get("jobId") if isinstance(data, dict) else None
        if not job_id:
            raise RemoteServiceError("Conversion failed to start")
        logger.info(f"Conversion job {job_id} started")
        return job_id

    async def _wait_for_job(self, session, job: ConversionJob) -> None:
        job_id = job.job_id
        for attempt in range(1, self.max_attempts + 1):
            job.attempts = attempt
            await asyncio.sleep(self.poll_interval)
            async with session.get(
                self.base_url,
                params={"action": "getJobStatus", "jobId": job_id},
                headers=ORIGIN_HEADERS,
            ) as resp:
                data = await resp.json(content_type=None)
            status = data.get("status") if isinstance(data, dict) else None
            logger.debug(f"Job {job_id} attempt {attempt}: {status}")
            if status == "done":
                job.move_to(JobState.DONE)
                return
            if status == "failed":
                job.move_to(JobState.FAILED)
                raise RemoteServiceError("Conversion failed on server")
        job.move_to(JobState.TIMED_OUT)
        raise ConversionTimeoutError(
            f"Conversion job {job_id} did not finish after {self.max_attempts} attempts"
        )

    async def _download(self, session, job_id: str, pdf_path: Path) -> None:
        pdf_path.parent.mkdir(parents=True, exist_ok=True)
        part_path = pdf_path.with_suffix(".pdf.part")
        try:
            async with session.get(
                self.base_url,
                params={
                    "mode": "download",
                    "action": "downloadJobResult",
                    "jobId": job_id,
                },
                headers=ORIGIN_HEADERS,
            ) as resp:
                if resp.status != 200:
                    raise RemoteServiceError(
                        f"PDF download failed with HTTP {resp.status}"
                    )
                with open(part_path, "wb") as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        f.write(chunk)
            os.replace(part_path, pdf_path)
        finally:
            # an interrupted download never reaches pdf_path
            if part_path.exists():
                part_path.unlink()
