import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from fastapi.concurrency import run_in_threadpool

from app.core.config import Settings
from app.core.errors import NotFoundError
from app.core.formatting import encode_route, format_itinerary, validate_payload
from app.core.store import RecordStore
from app.models.domain import CompanyInfo, ItineraryRecord
from app.services.convert import ConversionService
from app.services.render import render_document
from app.services.snapshot import Device, SnapshotService

logger = logging.getLogger("itinerary_server.pipeline")


@dataclass
class PipelineResult:
    itinerary_id: str
    document_path: Path
    docx_path: Path
    screenshot_path: Path
    context: Dict[str, Any] = field(default_factory=dict)


class ItineraryPipeline:
    """
    Turns a stored itinerary into a branded PDF:
    resolve -> validate -> owner -> map snapshot -> format -> DOCX -> PDF.

    Every step is fatal on failure; nothing from a failed run is reused.
    """

    def __init__(
        self,
        store: RecordStore,
        snapshots: SnapshotService,
        converter: ConversionService,
        settings: Settings,
    ):
        self.store = store
        self.snapshots = snapshots
        self.converter = converter
        self.settings = settings

    def resolve_itinerary(self, itinerary_id: str) -> ItineraryRecord:
        itinerary = self.store.find_itinerary(itinerary_id)
        if itinerary is None:
            raise NotFoundError(f"Itinerary with ID {itinerary_id} not found")
        return itinerary

    def resolve_company(self, user_id: str) -> CompanyInfo:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.company_info is None:
            raise NotFoundError(f"Company info not found for user {user_id}")
        return user.company_info

    async def process(self, itinerary_id: str) -> PipelineResult:
        logger.info(f"Processing itinerary {itinerary_id}")
        try:
            itinerary = self.resolve_itinerary(itinerary_id)
            payload = itinerary.data
            validate_payload(payload)
            company = self.resolve_company(itinerary.user_id)
            route = encode_route(payload.route)

            screenshot_path = self.settings.screenshots_dir / f"{itinerary_id}.jpg"
            await self.snapshots.capture_to_file(route, screenshot_path, Device.PHONE)

            context, images = format_itinerary(
                payload,
                company,
                screenshot_path,
                data_dir=self.settings.data_dir,
                default_cover_path=self.settings.default_cover_path,
            )

            docx_path = self.settings.temp_store_dir / f"{itinerary_id}.docx"
            pdf_path = self.settings.temp_store_dir / f"{itinerary_id}.pdf"
            await run_in_threadpool(
                render_document,
                self.settings.template_path,
                context,
                images,
                docx_path,
            )
            await self.converter.convert(docx_path, pdf_path)
        except Exception as e:
            logger.error(f"Error processing itinerary {itinerary_id}: {e}")
            raise

        logger.info(f"Itinerary {itinerary_id} processed: {pdf_path}")
        return PipelineResult(
            itinerary_id=itinerary_id,
            document_path=pdf_path,
            docx_path=docx_path,
            screenshot_path=screenshot_path,
            context=context,
        )
