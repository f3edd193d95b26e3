"""
Result schemas untuk AuthEngine.
Domain outcomes dikembalikan sebagai value, bukan exception, supaya caller
bisa branch secara deterministik.
"""

from datetime import datetime
from typing import Optional, Any, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from authengine.core.constants import SignInStatus, ResponseMessage, ErrorCode


class AccessError(BaseModel):
    """
    Satu error dengan description dan code.
    """
    model_config = ConfigDict(frozen=True)

    description: str = Field(..., description="Human readable message")
    code: str = Field(..., description="Machine readable error code")


class AccessResult(BaseModel):
    """
    Hasil operasi AccountManager / RoleManager.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    succeeded: bool = Field(..., description="Apakah operasi berhasil")
    errors: List[AccessError] = Field(default_factory=list, description="Daftar error")
    data: Optional[Any] = Field(None, description="Payload opsional")

    @classmethod
    def success(cls, data: Any = None) -> "AccessResult":
        """Buat successful result."""
        return cls(succeeded=True, data=data)

    @classmethod
    def failed(cls, description: str, code: str) -> "AccessResult":
        """Buat failed result dengan satu error."""
        return cls(succeeded=False, errors=[AccessError(description=description, code=getattr(code, "value", code))])

    @classmethod
    def invalid(cls, messages: List[str]) -> "AccessResult":
        """Buat failed result berisi semua validation violations."""
        return cls(
            succeeded=False,
            errors=[AccessError(description=m, code=ErrorCode.VALIDATION_FAILED.value) for m in messages]
        )

    def __bool__(self) -> bool:
        return self.succeeded


class SessionToken(BaseModel):
    """
    Token pair hasil sign-in. Tidak pernah dipersist oleh engine.
    """
    access_token: str = Field(..., description="Signed access token")
    refresh_token: str = Field(..., description="Opaque refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    issued_at: datetime = Field(..., description="Waktu issue")
    expires_at: datetime = Field(..., description="Waktu expiration access token")


class LoginActivitySnapshot(BaseModel):
    """
    Snapshot dari LoginActivity record saat sign-in berhasil.
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    device: str
    ip_address: str
    city: str
    country: str
    last_login_at: datetime


class SignInResult(BaseModel):
    """
    Hasil dari sign-in state machine.
    """
    status: SignInStatus = Field(..., description="Terminal state")
    message: str = Field(..., description="Pesan untuk caller")
    user_id: Optional[UUID] = Field(
        None, description="Hanya diisi untuk REQUIRE_TWO_FACTOR dan SUCCESS"
    )
    two_factor_token: Optional[str] = Field(
        None, description="Challenge token untuk two_factor_sign_in; hanya untuk REQUIRE_TWO_FACTOR"
    )
    token: Optional[SessionToken] = Field(None, description="Hanya diisi untuk SUCCESS")
    login_activity: Optional[LoginActivitySnapshot] = Field(None, description="Activity snapshot")

    @property
    def succeeded(self) -> bool:
        return self.status == SignInStatus.SUCCESS

    @property
    def is_locked_out(self) -> bool:
        return self.status == SignInStatus.LOCKED_OUT

    @property
    def requires_two_factor(self) -> bool:
        return self.status == SignInStatus.REQUIRE_TWO_FACTOR

    @classmethod
    def failed(cls) -> "SignInResult":
        """Failed result, sama untuk user tidak ditemukan dan password salah."""
        return cls(status=SignInStatus.FAILED, message=ResponseMessage.INVALID_CREDENTIALS)

    @classmethod
    def locked_out(cls) -> "SignInResult":
        return cls(status=SignInStatus.LOCKED_OUT, message=ResponseMessage.ACCOUNT_LOCKED)

    @classmethod
    def require_two_factor(cls, user_id: UUID, two_factor_token: str) -> "SignInResult":
        return cls(
            status=SignInStatus.REQUIRE_TWO_FACTOR,
            message=ResponseMessage.TWO_FACTOR_REQUIRED,
            user_id=user_id,
            two_factor_token=two_factor_token
        )
