import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store
from app.core.errors import NotFoundError, ValidationError
from app.core.store import RecordStore
from app.models.domain import (
    ItineraryPayload,
    ItineraryRecord,
    StatusUpdate,
    new_itinerary_id,
    now_iso,
)

logger = logging.getLogger("itinerary_server.itineraries")

router = APIRouter(prefix="/api", tags=["Itineraries"])


def require_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        raise ValidationError("User ID is required")
    return user_id


@router.post("/generate", status_code=201)
def create_itinerary(
    payload: ItineraryPayload,
    user_id: Optional[str] = Query(None, alias="userId"),
    store: RecordStore = Depends(get_store),
):
    user_id = require_user_id(user_id)
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")

    timestamp = now_iso()
    itinerary = ItineraryRecord(
        id=new_itinerary_id(),
        user_id=user_id,
        timestamp=timestamp,
        last_modified=timestamp,
        status="active",
        data=payload,
    )
    store.put_itinerary(itinerary)
    logger.info(f"Saved itinerary {itinerary.id} for user {user_id}")

    try:
        store.update_user(user_id, no_of_itineraries=user.no_of_itineraries + 1)
    except Exception:
        # Not critical, the itinerary itself is stored
        logger.exception(f"Error updating itinerary count for user {user_id}")

    return {
        "success": True,
        "message": "Itinerary saved successfully",
        "itineraryId": itinerary.id,
        "timestamp": timestamp,
    }


@router.get("/itineraries")
def list_itineraries(
    user_id: Optional[str] = Query(None, alias="userId"),
    store: RecordStore = Depends(get_store),
):
    user_id = require_user_id(user_id)
    itineraries = sorted(
        store.list_itineraries(user_id), key=lambda i: i.timestamp, reverse=True
    )
    return {
        "success": True,
        "count": len(itineraries),
        "itineraries": [i.model_dump(by_alias=True) for i in itineraries],
    }


@router.get("/itineraries/{itinerary_id}")
def get_itinerary(itinerary_id: str, store: RecordStore = Depends(get_store)):
    itinerary = store.find_itinerary(itinerary_id)
    if itinerary is None:
        raise NotFoundError(f"Itinerary with ID {itinerary_id} not found")
    return itinerary.model_dump(by_alias=True)


@router.patch("/itineraries/{itinerary_id}")
def update_itinerary_status(
    itinerary_id: str,
    update: StatusUpdate,
    store: RecordStore = Depends(get_store),
):
    itinerary = store.find_itinerary(itinerary_id)
    if itinerary is None:
        raise NotFoundError(f"Itinerary with ID {itinerary_id} not found")

    updated = itinerary.model_copy(
        update={"status": update.status, "last_modified": now_iso()}
    )
    store.put_itinerary(updated)
    logger.info(f"Itinerary {itinerary_id} status -> {update.status}")
    return updated.model_dump(by_alias=True)
