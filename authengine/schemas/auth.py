"""
Auth-related schemas: authenticator setup dan device/location info.
"""

from pydantic import BaseModel, ConfigDict, Field

from authengine.core.constants import DeviceType, Platform, UNKNOWN


class AuthenticatorSetup(BaseModel):
    """
    Material enrollment authenticator. Hanya diberikan sekali ke caller.
    """
    model_config = ConfigDict(frozen=True)

    manual_entry_key: str = Field(..., description="Base32 secret untuk input manual")
    provisioning_uri: str = Field(..., description="otpauth:// URI")
    qr_code: str = Field(..., description="QR code PNG sebagai base64 data URI")


class DeviceInfo(BaseModel):
    """
    Informasi device dari User-Agent.
    """
    device_type: DeviceType = DeviceType.UNKNOWN
    platform: Platform = Platform.UNKNOWN
    browser: str = UNKNOWN

    @property
    def label(self) -> str:
        """Label device yang disimpan pada LoginActivity."""
        if self.device_type == DeviceType.UNKNOWN and self.platform == Platform.UNKNOWN:
            return UNKNOWN
        return f"{self.browser} on {self.platform.value.title()} ({self.device_type.value.lower()})"


class Location(BaseModel):
    """
    Lokasi hasil IP lookup. Best-effort.
    """
    city: str = UNKNOWN
    country: str = UNKNOWN
