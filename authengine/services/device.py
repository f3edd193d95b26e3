"""
Device locator untuk AuthEngine.
Menentukan device, client IP, dan lokasi dari request headers. Semua lookup
bersifat best-effort: kegagalan menghasilkan "unknown", bukan exception.
"""

import ipaddress
import logging
import re
from typing import Mapping, Optional

import httpx

from authengine.core.config import LocatorConfig
from authengine.core.constants import DeviceType, Platform, UNKNOWN
from authengine.schemas.auth import DeviceInfo, Location

logger = logging.getLogger(__name__)


BOT_PATTERN = re.compile(r"bot|crawl|spider|slurp|curl|wget", re.IGNORECASE)
TABLET_PATTERN = re.compile(r"ipad|tablet|kindle|silk", re.IGNORECASE)
MOBILE_PATTERN = re.compile(r"mobi|iphone|ipod|android.+mobile|windows phone", re.IGNORECASE)

# Urutan penting: pattern pertama yang cocok menang
PLATFORM_PATTERNS = (
    (re.compile(r"iphone|ipad|ipod", re.IGNORECASE), Platform.IOS),
    (re.compile(r"android", re.IGNORECASE), Platform.ANDROID),
    (re.compile(r"windows", re.IGNORECASE), Platform.WINDOWS),
    (re.compile(r"macintosh|mac os x", re.IGNORECASE), Platform.MACOS),
    (re.compile(r"linux|x11", re.IGNORECASE), Platform.LINUX),
)
BROWSER_PATTERNS = (
    (re.compile(r"edg(e|a|ios)?/", re.IGNORECASE), "Edge"),
    (re.compile(r"opr/|opera", re.IGNORECASE), "Opera"),
    (re.compile(r"firefox/|fxios/", re.IGNORECASE), "Firefox"),
    (re.compile(r"chrome/|crios/", re.IGNORECASE), "Chrome"),
    (re.compile(r"safari/", re.IGNORECASE), "Safari"),
)


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """
    Parse User-Agent string menjadi DeviceInfo.

    Args:
        user_agent: User agent string

    Returns:
        DeviceInfo (UNKNOWN fields jika tidak dikenali)
    """
    if not user_agent:
        return DeviceInfo()

    if BOT_PATTERN.search(user_agent):
        return DeviceInfo(device_type=DeviceType.BOT)

    if TABLET_PATTERN.search(user_agent):
        device_type = DeviceType.TABLET
    elif MOBILE_PATTERN.search(user_agent):
        device_type = DeviceType.MOBILE
    else:
        device_type = DeviceType.DESKTOP

    platform = next(
        (value for pattern, value in PLATFORM_PATTERNS if pattern.search(user_agent)),
        Platform.UNKNOWN
    )
    browser = next(
        (name for pattern, name in BROWSER_PATTERNS if pattern.search(user_agent)),
        UNKNOWN
    )

    return DeviceInfo(device_type=device_type, platform=platform, browser=browser)


def client_ip_from_headers(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> str:
    """
    Ambil client IP: entry pertama X-Forwarded-For, fallback ke remote address.

    Args:
        headers: Request headers (case-insensitive keys)
        remote_addr: Socket peer address

    Returns:
        IP address atau "unknown"
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        candidate = forwarded_for.split(",")[0].strip()
        if candidate:
            return candidate
    return remote_addr or UNKNOWN


class HeaderDeviceLocator:
    """
    DeviceLocator berbasis request headers dengan optional ipinfo.io lookup.
    """

    def __init__(
        self,
        headers: Optional[Mapping[str, str]] = None,
        remote_addr: Optional[str] = None,
        config: Optional[LocatorConfig] = None,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize locator untuk satu request.

        Args:
            headers: Request headers
            remote_addr: Socket peer address
            config: Locator configuration
            client: Optional shared httpx client
            async_client: Optional shared httpx async client
        """
        self.headers = {key.lower(): value for key, value in (headers or {}).items()}
        self.remote_addr = remote_addr
        self.config = config or LocatorConfig()
        self._client = client
        self._async_client = async_client

    def current_device(self) -> DeviceInfo:
        """Device dari User-Agent header."""
        return parse_user_agent(self.headers.get("user-agent"))

    def current_ip(self) -> str:
        """Client IP untuk request ini."""
        return client_ip_from_headers(self.headers, self.remote_addr)

    def _should_lookup(self, ip_address: str) -> bool:
        if not self.config.ipinfo_token or not ip_address or ip_address == UNKNOWN:
            return False
        try:
            parsed = ipaddress.ip_address(ip_address)
        except ValueError:
            logger.debug("Skipping location lookup for malformed IP %s", ip_address)
            return False
        return parsed.is_global

    def _lookup_url(self, ip_address: str) -> str:
        return f"{self.config.ipinfo_url.rstrip('/')}/{ip_address}"

    @staticmethod
    def _to_location(payload: dict) -> Location:
        return Location(
            city=payload.get("city") or UNKNOWN,
            country=payload.get("country") or UNKNOWN
        )

    def location_for_ip(self, ip_address: str) -> Location:
        """
        Lookup lokasi untuk IP (blocking).

        Args:
            ip_address: IP address

        Returns:
            Location; "unknown" jika lookup gagal
        """
        if not self._should_lookup(ip_address):
            return Location()

        params = {"token": self.config.ipinfo_token}
        try:
            if self._client is not None:
                response = self._client.get(
                    self._lookup_url(ip_address), params=params, timeout=self.config.timeout_seconds
                )
            else:
                with httpx.Client(timeout=self.config.timeout_seconds) as client:
                    response = client.get(self._lookup_url(ip_address), params=params)
            response.raise_for_status()
            return self._to_location(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Location lookup failed for %s: %s", ip_address, e)
            return Location()

    async def alocation_for_ip(self, ip_address: str) -> Location:
        """
        Async variant dari location_for_ip.
        """
        if not self._should_lookup(ip_address):
            return Location()

        params = {"token": self.config.ipinfo_token}
        try:
            if self._async_client is not None:
                response = await self._async_client.get(
                    self._lookup_url(ip_address), params=params, timeout=self.config.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await client.get(self._lookup_url(ip_address), params=params)
            response.raise_for_status()
            return self._to_location(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Location lookup failed for %s: %s", ip_address, e)
            return Location()
