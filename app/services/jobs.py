import asyncio
import logging
import uuid
from functools import partial
from typing import Any, Dict, Optional

from app.core.errors import ItineraryError
from app.core.pipeline import ItineraryPipeline

logger = logging.getLogger("itinerary_server.jobs")


class DocumentJobs:
    """
    In-memory registry of document generation tasks running on the event loop.

    Pending jobs are always kept; only the `max_finished` most recently
    submitted finished jobs stay queryable.
    """

    def __init__(self, pipeline: ItineraryPipeline, max_finished: int = 100):
        self.pipeline = pipeline
        self.max_finished = max_finished
        self._tasks: Dict[str, asyncio.Task] = {}
        self._itineraries: Dict[str, str] = {}

    def submit(self, itinerary_id: str) -> str:
        job_id = uuid.uuid4().hex
        task = asyncio.create_task(self.pipeline.process(itinerary_id))
        self._tasks[job_id] = task
        self._itineraries[job_id] = itinerary_id
        task.add_done_callback(partial(self._finished, job_id))
        logger.info(f"Job {job_id} started for itinerary {itinerary_id}")
        return job_id

    def _finished(self, job_id: str, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info(f"Job {job_id} cancelled")
        elif task.exception() is not None:
            logger.error(f"Job {job_id} failed: {task.exception()}")
        else:
            logger.info(f"Job {job_id} done")
        self._prune()

    def _prune(self) -> None:
        finished = [job_id for job_id, task in self._tasks.items() if task.done()]
        for job_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self._tasks[job_id]
            del self._itineraries[job_id]

    def __len__(self) -> int:
        return len(self._tasks)

    def task(self, job_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        task = self._tasks.get(job_id)
        if task is None:
            return None

        info: Dict[str, Any] = {
            "jobId": job_id,
            "itineraryId": self._itineraries[job_id],
        }
        if not task.done():
            info["status"] = "pending"
        elif task.cancelled():
            info["status"] = "cancelled"
        elif task.exception() is not None:
            error = task.exception()
            info["status"] = "failed"
            info["error"] = (
                error.title if isinstance(error, ItineraryError) else "Internal Server Error"
            )
            info["details"] = str(error)
        else:
            result = task.result()
            info["status"] = "done"
            info["itineraryPath"] = f"/document/{result.document_path.name}"
        return info

    def cancel(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        return task.cancel()
