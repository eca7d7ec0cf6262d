import base64
import os
import sys
from http.cookies import SimpleCookie
from pathlib import Path

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import Settings
from app.core.store import MemoryRecordStore
from app.models.domain import CompanyInfo, ItineraryRecord, UserRecord
from app.services.auth import get_password_hash

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

SAMPLE_PAYLOAD = {
    "route": "Colombo Airport - Kandy - Galle",
    "touristName": "Jane Doe",
    "numberOfTravelers": 2,
    "tourStartDate": "2025-01-05",
    "numberOfDays": 3,
    "coverImage": "default",
    "dailyPlans": [
        {
            "place": "Kandy",
            "activity": "Temple of the Tooth",
            "meals": {"breakfast": True, "lunch": True, "dinner": True},
            "overnightStay": True,
            "hotel": "Earl's Regency",
            "description": "Drive to Kandy",
        },
        {
            "place": "Ella",
            "activity": "custom",
            "customActivity": "Nine Arch Bridge walk",
            "meals": {"breakfast": True},
            "overnightStay": True,
            "hotel": "custom",
            "customHotel": "",
        },
        {
            "place": "Galle",
            "activity": "Fort tour",
            "overnightStay": False,
        },
    ],
}


class FakeSnapshots:
    """Writes a real PNG instead of calling the screenshot service."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def capture_to_file(self, route, file_path, device="phone"):
        self.calls.append((route, Path(file_path), device))
        if self.error:
            raise self.error
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(PNG_BYTES)
        return file_path


class FakeConverter:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def convert(self, docx_path, pdf_path):
        self.calls.append((Path(docx_path), Path(pdf_path)))
        if self.error:
            raise self.error
        Path(pdf_path).write_bytes(b"%PDF-1.4\n% fake\n")
        return Path(pdf_path)


class FakeContent:
    def __init__(self, body: bytes):
        self.body = body

    async def iter_chunked(self, size):
        for start in range(0, len(self.body), size):
            yield self.body[start : start + size]


class FakeResponse:
    def __init__(self, status=200, json_data=None, body=b"", cookies=None):
        self.status = status
        self._json = json_data
        self._body = body
        self.cookies = SimpleCookie()
        for name, value in (cookies or {}).items():
            self.cookies[name] = value
        self.content = FakeContent(body)

    async def json(self, content_type="application/json"):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays queued responses in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        store_backend="memory",
        template_path=tmp_path / "templates" / "itinerary.docx",
        default_cover_path=tmp_path / "public" / "default-cover.jpg",
        screenshots_dir=tmp_path / "img" / "itinerary",
        temp_store_dir=tmp_path / "temp" / "tempStore",
        upload_dir=tmp_path / "img" / "pp",
        convert_poll_interval=0,
        convert_max_attempts=3,
    )


@pytest.fixture
def assets(settings):
    """Default cover and a company logo on disk."""
    settings.default_cover_path.parent.mkdir(parents=True, exist_ok=True)
    settings.default_cover_path.write_bytes(PNG_BYTES)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    (settings.upload_dir / "company_user_1.png").write_bytes(PNG_BYTES)
    return settings


def make_user(user_id="user_1", username="agent007", logo="/img/pp/company_user_1.png"):
    return UserRecord(
        id=user_id,
        username=username,
        password_hash=get_password_hash("secret123"),
        full_name="Travel Agent",
        company_info=CompanyInfo(
            company_name="Island Tours",
            address="1 Galle Road, Colombo",
            phone="+94 11 000 0000",
            email="hello@islandtours.example",
            website="https://islandtours.example",
            logo=logo,
        ),
        created_at="2025-01-01T00:00:00.000Z",
    )


def make_itinerary(itinerary_id="itin_1", user_id="user_1", payload=None, timestamp="2025-01-02T00:00:00.000Z"):
    return ItineraryRecord.model_validate(
        {
            "id": itinerary_id,
            "userId": user_id,
            "timestamp": timestamp,
            "lastModified": timestamp,
            "status": "active",
            "data": payload or SAMPLE_PAYLOAD,
        }
    )


@pytest.fixture
def store():
    store = MemoryRecordStore()
    store.insert_user(make_user())
    store.put_itinerary(make_itinerary())
    return store
