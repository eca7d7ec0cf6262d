import asyncio
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from app.core.errors import NotFoundError, RemoteServiceError
from app.core.pipeline import ItineraryPipeline
from app.services.jobs import DocumentJobs
from app.services.template import build_default_template
from conftest import FakeConverter, FakeSnapshots


class SlowSnapshots(FakeSnapshots):
    async def capture_to_file(self, route, file_path, device="phone"):
        await asyncio.sleep(60)
        return await super().capture_to_file(route, file_path, device)


def _jobs(store, settings, snapshots=None, converter=None):
    build_default_template(settings.template_path)
    pipeline = ItineraryPipeline(
        store, snapshots or FakeSnapshots(), converter or FakeConverter(), settings
    )
    return DocumentJobs(pipeline)


@pytest.mark.asyncio
async def test_job_runs_to_done(store, assets):
    jobs = _jobs(store, assets)
    job_id = jobs.submit("itin_1")

    assert jobs.status(job_id)["status"] == "pending"
    await jobs.task(job_id)

    assert jobs.status(job_id) == {
        "jobId": job_id,
        "itineraryId": "itin_1",
        "status": "done",
        "itineraryPath": "/document/itin_1.pdf",
    }


@pytest.mark.asyncio
async def test_failed_job_reports_error(store, assets):
    jobs = _jobs(store, assets, snapshots=FakeSnapshots(error=RemoteServiceError("Link Error")))
    job_id = jobs.submit("itin_1")

    with pytest.raises(RemoteServiceError):
        await jobs.task(job_id)

    status = jobs.status(job_id)
    assert status["status"] == "failed"
    assert status["error"] == RemoteServiceError.title
    assert status["details"] == "Link Error"


@pytest.mark.asyncio
async def test_missing_itinerary_job_fails_not_found(store, assets):
    jobs = _jobs(store, assets)
    job_id = jobs.submit("itin_404")
    with pytest.raises(NotFoundError):
        await jobs.task(job_id)
    assert jobs.status(job_id)["error"] == "Not Found"


@pytest.mark.asyncio
async def test_cancel_pending_job(store, assets):
    jobs = _jobs(store, assets, snapshots=SlowSnapshots())
    job_id = jobs.submit("itin_1")
    await asyncio.sleep(0)

    assert jobs.cancel(job_id) is True
    with pytest.raises(asyncio.CancelledError):
        await jobs.task(job_id)
    assert jobs.status(job_id)["status"] == "cancelled"
    assert jobs.cancel(job_id) is False
    assert not assets.temp_store_dir.exists()


def test_unknown_job():
    jobs = DocumentJobs(pipeline=None)
    assert jobs.status("nope") is None
    assert jobs.task("nope") is None
    assert jobs.cancel("nope") is False


class GatedPipeline:
    """Finishes immediately, except for "slow" which waits for the gate."""

    def __init__(self, error=None):
        self.error = error
        self.gate = asyncio.Event()

    async def process(self, itinerary_id):
        if itinerary_id == "slow":
            await self.gate.wait()
        if self.error:
            raise self.error
        return SimpleNamespace(document_path=Path(f"{itinerary_id}.pdf"))


@pytest.mark.asyncio
async def test_finished_jobs_are_evicted_beyond_limit():
    jobs = DocumentJobs(GatedPipeline(), max_finished=2)
    job_ids = [jobs.submit(f"itin_{i}") for i in range(5)]

    await asyncio.gather(*(jobs.task(job_id) for job_id in job_ids))
    await asyncio.sleep(0)

    assert len(jobs) == 2
    assert jobs.status(job_ids[0]) is None
    assert jobs.status(job_ids[-1])["status"] == "done"


@pytest.mark.asyncio
async def test_pending_jobs_are_never_evicted():
    pipeline = GatedPipeline()
    jobs = DocumentJobs(pipeline, max_finished=1)
    slow = jobs.submit("slow")
    fast = [jobs.submit(f"itin_{i}") for i in range(3)]

    await asyncio.gather(*(jobs.task(job_id) for job_id in fast))
    await asyncio.sleep(0)

    assert jobs.status(slow)["status"] == "pending"
    assert len(jobs) == 2

    pipeline.gate.set()
    await jobs.task(slow)


@pytest.mark.asyncio
async def test_failed_job_is_logged_without_polling(caplog):
    jobs = DocumentJobs(GatedPipeline(error=RemoteServiceError("Link Error")))
    with caplog.at_level(logging.ERROR, logger="itinerary_server.jobs"):
        job_id = jobs.submit("itin_1")
        await asyncio.wait([jobs.task(job_id)])
        await asyncio.sleep(0)

    assert f"Job {job_id} failed: Link Error" in caplog.text
