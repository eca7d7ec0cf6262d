"""
Record storage for users and itineraries.

Itineraries are addressed by the compound key (user_id, itinerary_id), the
same nesting the flat JSON layout uses:

    itineraries.json  {"<userId>": {"<itineraryId>": {...record...}}}
    users.json        [{...user record...}, ...]
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from app.core.database import Base, make_engine, make_session_factory
from app.core.errors import NotFoundError, ValidationError
from app.models.domain import ItineraryRecord, UserRecord
from app.models.sql import ItineraryRow, UserRow

logger = logging.getLogger("itinerary_server.store")

UserPredicate = Callable[[UserRecord], bool]
ItineraryPredicate = Callable[[ItineraryRecord], bool]


class RecordStore(ABC):
    """Get / put / find-by-predicate over the user and itinerary collections."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_users(self, predicate: UserPredicate) -> List[UserRecord]: ...

    @abstractmethod
    def insert_user(self, user: UserRecord) -> UserRecord: ...

    @abstractmethod
    def update_user(self, user_id: str, **changes: Any) -> UserRecord: ...

    @abstractmethod
    def put_itinerary(self, itinerary: ItineraryRecord) -> ItineraryRecord: ...

    @abstractmethod
    def get_itinerary(
        self, user_id: str, itinerary_id: str
    ) -> Optional[ItineraryRecord]: ...

    @abstractmethod
    def find_itineraries(
        self, predicate: ItineraryPredicate
    ) -> List[ItineraryRecord]: ...

    @abstractmethod
    def list_itineraries(self, user_id: str) -> List[ItineraryRecord]: ...

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        matches = self.find_users(lambda u: u.username == username)
        return matches[0] if matches else None

    def find_itinerary(self, itinerary_id: str) -> Optional[ItineraryRecord]:
        """Linear scan across every user's itineraries."""
        matches = self.find_itineraries(lambda i: i.id == itinerary_id)
        return matches[0] if matches else None


def _dump(record) -> Dict[str, Any]:
    return record.model_dump(by_alias=True, mode="json")


class DocumentRecordStore(RecordStore):
    """
    Store backed by two whole JSON documents that are read, modified and
    written back on every operation. Writes are serialized by a lock.
    """

    def __init__(self):
        self._lock = threading.Lock()

    @abstractmethod
    def _load_users(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def _save_users(self, users: List[Dict[str, Any]]) -> None: ...

    @abstractmethod
    def _load_itineraries(self) -> Dict[str, Dict[str, Dict[str, Any]]]: ...

    @abstractmethod
    def _save_itineraries(
        self, itineraries: Dict[str, Dict[str, Dict[str, Any]]]
    ) -> None: ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        for raw in self._load_users():
            if raw.get("id") == user_id:
                return UserRecord.model_validate(raw)
        return None

    def find_users(self, predicate: UserPredicate) -> List[UserRecord]:
        users = [UserRecord.model_validate(raw) for raw in self._load_users()]
        return [u for u in users if predicate(u)]

    def insert_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            users = self._load_users()
            if any(raw.get("id") == user.id for raw in users):
                raise ValidationError(f"User {user.id} already exists")
            users.append(_dump(user))
            self._save_users(users)
        return user

    def update_user(self, user_id: str, **changes: Any) -> UserRecord:
        with self._lock:
            users = self._load_users()
            for index, raw in enumerate(users):
                if raw.get("id") == user_id:
                    updated = UserRecord.model_validate(raw).model_copy(update=changes)
                    users[index] = _dump(updated)
                    self._save_users(users)
                    return updated
        raise NotFoundError(f"User {user_id} not found")

    def put_itinerary(self, itinerary: ItineraryRecord) -> ItineraryRecord:
        if not itinerary.user_id:
            raise ValidationError("Itinerary records require a userId")
        with self._lock:
            itineraries = self._load_itineraries()
            itineraries.setdefault(itinerary.user_id, {})[itinerary.id] = _dump(
                itinerary
            )
            self._save_itineraries(itineraries)
        return itinerary

    def get_itinerary(
        self, user_id: str, itinerary_id: str
    ) -> Optional[ItineraryRecord]:
        raw = self._load_itineraries().get(user_id, {}).get(itinerary_id)
        return ItineraryRecord.model_validate(raw) if raw else None

    def find_itineraries(
        self, predicate: ItineraryPredicate
    ) -> List[ItineraryRecord]:
        found = []
        for user_itineraries in self._load_itineraries().values():
            if not isinstance(user_itineraries, dict):
                continue
            for raw in user_itineraries.values():
                record = ItineraryRecord.model_validate(raw)
                if predicate(record):
                    found.append(record)
        return found

    def list_itineraries(self, user_id: str) -> List[ItineraryRecord]:
        raw_items = self._load_itineraries().get(user_id, {})
        return [ItineraryRecord.model_validate(raw) for raw in raw_items.values()]


class MemoryRecordStore(DocumentRecordStore):
    def __init__(self, users=None, itineraries=None):
        super().__init__()
        self._users: List[Dict[str, Any]] = list(users or [])
        self._itineraries: Dict[str, Dict[str, Dict[str, Any]]] = dict(
            itineraries or {}
        )

    def _load_users(self):
        return json.loads(json.dumps(self._users))

    def _save_users(self, users):
        self._users = users

    def _load_itineraries(self):
        return json.loads(json.dumps(self._itineraries))

    def _save_itineraries(self, itineraries):
        self._itineraries = itineraries


class JsonFileRecordStore(DocumentRecordStore):
    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.users_path = self.directory / "users.json"
        self.itineraries_path = self.directory / "itineraries.json"

    def _read(self, path: Path, default):
        if not path.exists():
            return default
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: Path, data) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Wrote {path}")

    def _load_users(self):
        return self._read(self.users_path, [])

    def _save_users(self, users):
        self._write(self.users_path, users)

    def _load_itineraries(self):
        return self._read(self.itineraries_path, {})

    def _save_itineraries(self, itineraries):
        self._write(self.itineraries_path, itineraries)


class SqlRecordStore(RecordStore):
    """Records kept as JSON blobs in SQL tables (SQLite by default)."""

    def __init__(self, database_url: str):
        self.engine = make_engine(database_url)
        self.SessionLocal = make_session_factory(self.engine)
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialized.")

    def _users(self, db):
        return db.query(UserRow)

    def _itineraries(self, db):
        return db.query(ItineraryRow)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.SessionLocal() as db:
            row = self._users(db).filter(UserRow.id == user_id).first()
            return UserRecord.model_validate_json(row.full_json_blob) if row else None

    def find_users(self, predicate: UserPredicate) -> List[UserRecord]:
        with self.SessionLocal() as db:
            users = [
                UserRecord.model_validate_json(row.full_json_blob)
                for row in self._users(db).all()
            ]
        return [u for u in users if predicate(u)]

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.SessionLocal() as db:
            row = self._users(db).filter(UserRow.username == username).first()
            return UserRecord.model_validate_json(row.full_json_blob) if row else None

    def insert_user(self, user: UserRecord) -> UserRecord:
        with self.SessionLocal() as db:
            if self._users(db).filter(UserRow.id == user.id).first():
                raise ValidationError(f"User {user.id} already exists")
            db.add(
                UserRow(
                    id=user.id,
                    username=user.username,
                    full_json_blob=json.dumps(_dump(user)),
                )
            )
            db.commit()
        return user

    def update_user(self, user_id: str, **changes: Any) -> UserRecord:
        with self.SessionLocal() as db:
            row = self._users(db).filter(UserRow.id == user_id).first()
            if not row:
                raise NotFoundError(f"User {user_id} not found")
            updated = UserRecord.model_validate_json(row.full_json_blob).model_copy(
                update=changes
            )
            row.username = updated.username
            row.full_json_blob = json.dumps(_dump(updated))
            db.commit()
        return updated

    def put_itinerary(self, itinerary: ItineraryRecord) -> ItineraryRecord:
        if not itinerary.user_id:
            raise ValidationError("Itinerary records require a userId")
        with self.SessionLocal() as db:
            db.merge(
                ItineraryRow(
                    user_id=itinerary.user_id,
                    id=itinerary.id,
                    timestamp=itinerary.timestamp,
                    full_json_blob=json.dumps(_dump(itinerary)),
                )
            )
            db.commit()
        return itinerary

    def get_itinerary(
        self, user_id: str, itinerary_id: str
    ) -> Optional[ItineraryRecord]:
        with self.SessionLocal() as db:
            row = (
                self._itineraries(db)
                .filter(
                    ItineraryRow.user_id == user_id,
                    ItineraryRow.id == itinerary_id,
                )
                .first()
            )
            return (
                ItineraryRecord.model_validate_json(row.full_json_blob) if row else None
            )

    def find_itineraries(
        self, predicate: ItineraryPredicate
    ) -> List[ItineraryRecord]:
        with self.SessionLocal() as db:
            records = [
                ItineraryRecord.model_validate_json(row.full_json_blob)
                for row in self._itineraries(db).all()
            ]
        return [r for r in records if predicate(r)]

    def list_itineraries(self, user_id: str) -> List[ItineraryRecord]:
        with self.SessionLocal() as db:
            rows = (
                self._itineraries(db)
                .filter(ItineraryRow.user_id == user_id)
                .order_by(ItineraryRow.timestamp.desc())
                .all()
            )
            return [ItineraryRecord.model_validate_json(r.full_json_blob) for r in rows]


def create_store(settings) -> RecordStore:
    if settings.store_backend == "sql":
        return SqlRecordStore(settings.resolved_database_url)
    if settings.store_backend == "memory":
        return MemoryRecordStore()
    return JsonFileRecordStore(settings.data_dir)
