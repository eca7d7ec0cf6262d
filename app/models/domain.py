import secrets
import string
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

BASE36 = string.digits + string.ascii_lowercase


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Meals(CamelModel):
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False


class DailyPlan(CamelModel):
    place: str = ""
    activity: Optional[str] = None
    custom_activity: Optional[str] = None
    meals: Optional[Meals] = None
    overnight_stay: bool = False
    hotel: Optional[str] = None
    custom_hotel: Optional[str] = None
    description: Optional[str] = None

    @property
    def resolved_activity(self) -> Optional[str]:
        if self.activity == "custom" or not self.activity:
            return self.custom_activity
        return self.activity

    @property
    def resolved_hotel(self) -> Optional[str]:
        if self.hotel == "custom":
            return self.custom_hotel
        return self.hotel or self.custom_hotel


class ItineraryPayload(CamelModel):
    """Trip data as submitted by the itinerary builder."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    route: str = ""
    tourist_name: str = ""
    number_of_travelers: Optional[int] = None
    tour_start_date: Optional[str] = None
    number_of_days: Optional[int] = None
    cover_image: str = "default"
    custom_image: Optional[str] = None
    daily_plans: List[DailyPlan] = Field(default_factory=list)


class ItineraryRecord(CamelModel):
    id: str
    user_id: str
    timestamp: str
    last_modified: str
    status: str = "active"
    data: ItineraryPayload


class CompanyInfo(CamelModel):
    company_name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    logo: str = ""


class UserRecord(CamelModel):
    id: str
    username: str
    password_hash: str
    full_name: str
    profile_pic: str = ""
    plan: str = "Basic"
    company_info: Optional[CompanyInfo] = None
    created_at: str
    last_login: Optional[str] = None
    no_of_itineraries: int = 0

    def public(self) -> dict:
        """Serialized record without the password hash."""
        return self.model_dump(by_alias=True, exclude={"password_hash"})


class LoginRequest(BaseModel):
    username: str
    password: str


class DownloadRequest(CamelModel):
    itinerary_id: str


class StatusUpdate(BaseModel):
    status: str = Field(min_length=1, max_length=32)


def now_iso() -> str:
    """UTC timestamp in the `2025-06-21T07:45:28.113Z` form the records use."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _millis() -> int:
    return int(time.time() * 1000)


def _suffix(length: int) -> str:
    return "".join(secrets.choice(BASE36) for _ in range(length))


def new_user_id() -> str:
    return f"user_{_millis()}_{_suffix(6)}"


def new_itinerary_id() -> str:
    return f"itin_{_millis()}_{_suffix(9)}"
