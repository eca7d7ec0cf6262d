from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import Settings
from app.core.pipeline import ItineraryPipeline
from app.core.store import RecordStore
from app.models.domain import UserRecord
from app.services.auth import decode_access_token
from app.services.jobs import DocumentJobs

bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_pipeline(request: Request) -> ItineraryPipeline:
    return request.app.state.pipeline


def get_jobs(request: Request) -> DocumentJobs:
    return request.app.state.jobs


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: RecordStore = Depends(get_store),
) -> UserRecord:
    unauthorized = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise unauthorized
    user = store.get_user(user_id)
    if user is None:
        raise unauthorized
    return user
