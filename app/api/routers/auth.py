import logging
import re
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from app.api.deps import get_current_user, get_settings, get_store
from app.core.config import Settings
from app.core.store import RecordStore
from app.models.domain import (
    CompanyInfo,
    LoginRequest,
    UserRecord,
    new_user_id,
    now_iso,
)
from app.services.auth import create_access_token, get_password_hash, verify_password

logger = logging.getLogger("itinerary_server.auth")

router = APIRouter(prefix="/api", tags=["Auth"])

DEFAULT_PROFILE_PIC = "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?ixlib=rb-1.2.1&auto=format&fit=facearea&facepad=2&w=256&h=256&q=80"
ALLOWED_IMAGE_TYPES = {"image/jpeg": ".jpg", "image/png": ".png", "image/gif": ".gif"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5MB
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email.lower()))


def validate_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


async def save_upload(upload: UploadFile, prefix: str, upload_dir: Path) -> str:
    """Store an uploaded image and return its public `/img/pp/...` reference."""
    if upload.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Invalid file type",
                "details": "Only JPEG, PNG, or GIF images are allowed",
            },
        )
    content = await upload.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail={"error": "File upload error", "details": "File too large"},
        )
    ext = ALLOWED_IMAGE_TYPES[upload.content_type]
    filename = f"{prefix}_{int(time.time() * 1000)}{ext}"
    upload_dir.mkdir(parents=True, exist_ok=True)
    (upload_dir / filename).write_bytes(content)
    return f"/img/pp/{filename}"


@router.post("/register", status_code=201)
async def register(
    username: str = Form(""),
    password: str = Form(""),
    full_name: str = Form("", alias="fullName"),
    company_name: str = Form("", alias="companyName"),
    address: str = Form(""),
    phone: str = Form(""),
    email: str = Form(""),
    website: str = Form(""),
    profile_pic: Optional[UploadFile] = File(None, alias="profilePic"),
    company_logo: Optional[UploadFile] = File(None, alias="companyLogo"),
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    errors: List[str] = []
    if len(username) < 4:
        errors.append("Username must be at least 4 characters")
    if len(password) < 6:
        errors.append("Password must be at least 6 characters")
    if len(full_name) < 3:
        errors.append("Full name is required")
    if email and not validate_email(email):
        errors.append("Invalid email format")
    if website and not validate_url(website):
        errors.append("Invalid website URL")
    if errors:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": errors},
        )

    if store.find_user_by_username(username):
        return JSONResponse(
            status_code=400, content={"error": "Username already exists"}
        )

    profile_pic_url = DEFAULT_PROFILE_PIC
    if profile_pic is not None and profile_pic.filename:
        profile_pic_url = await save_upload(profile_pic, "user", settings.upload_dir)
    company_logo_url = ""
    if company_logo is not None and company_logo.filename:
        company_logo_url = await save_upload(
            company_logo, "company_user", settings.upload_dir
        )

    user = UserRecord(
        id=new_user_id(),
        username=username,
        password_hash=get_password_hash(password),
        full_name=full_name,
        profile_pic=profile_pic_url,
        company_info=CompanyInfo(
            company_name=company_name,
            address=address,
            phone=phone,
            email=email,
            website=website,
            logo=company_logo_url,
        ),
        created_at=now_iso(),
    )
    store.insert_user(user)
    logger.info(f"Registered user {user.id} ({username})")

    return {
        "success": True,
        "message": "User registered successfully",
        "user": user.public(),
    }


@router.post("/login")
def login(credentials: LoginRequest, store: RecordStore = Depends(get_store)):
    user = store.find_user_by_username(credentials.username)
    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Failed login for {credentials.username}")
        return JSONResponse(
            status_code=401,
            content={"success": False, "error": "Invalid username or password"},
        )

    user = store.update_user(user.id, last_login=now_iso())
    access_token = create_access_token(data={"sub": user.id})
    return {
        **user.public(),
        "success": True,
        "access_token": access_token,
        "token_type": "bearer",
    }


@router.get("/me")
def read_me(current_user: UserRecord = Depends(get_current_user)):
    return current_user.public()
