import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from app.api.deps import get_settings
from app.core.config import Settings
from app.core.errors import ItineraryError, NotFoundError

logger = logging.getLogger("itinerary_server.data")

router = APIRouter(prefix="/api/data", tags=["Reference data"])

# Lookup lists the itinerary builder offers for daily plans, under <DATA_DIR>/db
ACTIVITY_FILE = "activityData.json"
HOTEL_FILE = "hotelData.json"
CITIES_FILE = "gh/cities.sql"


def load_reference_json(settings: Settings, name: str, label: str):
    path = settings.data_dir / "db" / name
    if not path.is_file():
        raise NotFoundError(f"No {label} data at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except ValueError as e:
        logger.error(f"Error reading {path}: {e}")
        raise ItineraryError(f"Failed to load {label} data") from e


@router.get("/activity.json")
def get_activities(settings: Settings = Depends(get_settings)):
    return load_reference_json(settings, ACTIVITY_FILE, "activity")


@router.get("/hotels.json")
def get_hotels(settings: Settings = Depends(get_settings)):
    return load_reference_json(settings, HOTEL_FILE, "hotel")


@router.get("/cities.sql", response_class=PlainTextResponse)
def get_cities(settings: Settings = Depends(get_settings)):
    path = settings.data_dir / "db" / CITIES_FILE
    if not path.is_file():
        raise NotFoundError(f"No cities data at {path}")
    return path.read_text(encoding="utf-8")
