import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

import aiohttp

from app.core.errors import RemoteServiceError, ValidationError

logger = logging.getLogger("itinerary_server.snapshot")

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


class Device(str, Enum):
    DESKTOP = "desktop"
    TABLET = "tablet"
    PHONE = "phone"


class SnapshotService(Protocol):
    async def capture_to_file(
        self, route: str, file_path: Path, device: Device = Device.PHONE
    ) -> Path: ...


@asynccontextmanager
async def open_session(
    session: Optional[aiohttp.ClientSession], timeout: float
):
    """Yield the injected session, or a short-lived one closed on exit."""
    if session is not None:
        yield session
        return
    async with aiohttp.ClientSession(
        headers={"User-Agent": USER_AGENT},
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as owned:
        yield owned


def _cookie_header(response) -> str:
    return "; ".join(f"{name}={morsel.value}" for name, morsel in response.cookies.items())


class ScreenshotMachineClient:
    """Rasterizes the route map page through screenshotmachine.com."""

    def __init__(
        self,
        base_url: str = "https://www.screenshotmachine.com",
        map_frame_url: str = "https://map-framer-orpin.vercel.app/#",
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.map_frame_url = map_frame_url
        self.timeout = timeout
        self.session = session

    async def capture(
        self, route: str, device: Union[Device, str] = Device.PHONE
    ) -> bytes:
        """Return the raw image bytes for an encoded route."""
        try:
            device = Device(device)
        except ValueError:
            raise ValidationError(f"Unsupported device profile: {device}")

        url = self.map_frame_url + route
        logger.info(f"Capturing map screenshot for route: {route} on device: {device.value}")

        try:
            async with open_session(self.session, self.timeout) as session:
                async with session.post(
                    f"{self.base_url}/capture.php",
                    data={"url": url, "device": device.value, "cacheLimit": "0"},
                ) as resp:
                    if resp.status != 200:
                        raise RemoteServiceError(
                            f"Screenshot request failed with HTTP {resp.status}"
                        )
                    payload = await resp.json(content_type=None)
                    cookies = _cookie_header(resp)

                if not isinstance(payload, dict) or payload.get("status") != "success":
                    raise RemoteServiceError(f"Screenshot service error: {payload}")
                link = payload.get("link")
                if not link:
                    raise RemoteServiceError("Screenshot service returned no link")

                async with session.get(
                    f"{self.base_url}/{link.lstrip('/')}",
                    headers={"Cookie": cookies} if cookies else None,
                ) as img_resp:
                    if img_resp.status != 200:
                        raise RemoteServiceError(
                            f"Screenshot download failed with HTTP {img_resp.status}"
                        )
                    return await img_resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Screenshot capture failed: {e}")
            raise RemoteServiceError(f"Screenshot capture failed: {e}") from e

    async def capture_to_file(
        self,
        route: str,
        file_path: Path,
        device: Union[Device, str] = Device.PHONE,
    ) -> Path:
        image = await self.capture(route, device)
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(image)
        logger.info(f"Screenshot saved successfully to {file_path}")
        return file_path
