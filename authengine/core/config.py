"""
Konfigurasi AuthEngine menggunakan Pydantic Settings.
Konfigurasi dimuat dari environment variables (prefix AUTHENGINE_) atau file .env,
lalu diteruskan secara eksplisit ke setiap komponen.
"""

from typing import Optional
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TokenConfig(BaseModel):
    """Konfigurasi signing dan validasi token."""

    secret: str = Field(..., description="Symmetric secret untuk HMAC-SHA256 signing")
    issuer: Optional[str] = Field(None, description="Issuer claim; validasi di-skip jika kosong")
    audience: Optional[str] = Field(None, description="Audience claim; validasi di-skip jika kosong")
    expiration_minutes: int = Field(default=30, gt=0, description="Masa berlaku access token dalam menit")
    algorithm: str = Field(default="HS256", description="Algoritma JWT")
    refresh_token_bytes: int = Field(default=32, ge=8, description="Jumlah random bytes untuk refresh token")
    confirmation_expiration_minutes: int = Field(
        default=30, gt=0, description="Masa berlaku token konfirmasi/reset"
    )
    two_factor_expiration_minutes: int = Field(
        default=5, gt=0, description="Masa berlaku challenge token two-factor sign-in"
    )

    @field_validator("secret")
    def validate_secret(cls, v: str) -> str:
        """Secret tidak boleh kosong."""
        if not v or not v.strip():
            raise ValueError("Token secret must be set")
        return v

    @field_validator("algorithm")
    def validate_algorithm(cls, v: str) -> str:
        """Hanya HMAC-SHA256 yang didukung."""
        if v.upper() != "HS256":
            raise ValueError("Only HS256 is supported")
        return v.upper()


class PasswordPolicy(BaseModel):
    """Password policy yang dicek sebelum hashing."""

    min_length: int = Field(default=3, ge=1, description="Panjang minimal password")
    max_length: int = Field(default=128, ge=1, description="Panjang maksimal password")
    require_digit: bool = Field(default=False, description="Memerlukan angka")
    require_upper: bool = Field(default=False, description="Memerlukan huruf besar")
    require_lower: bool = Field(default=False, description="Memerlukan huruf kecil")
    require_special: bool = Field(default=False, description="Memerlukan karakter khusus")

    @model_validator(mode="after")
    def check_length_bounds(self) -> "PasswordPolicy":
        """Pastikan min_length <= max_length."""
        if self.min_length > self.max_length:
            raise ValueError("min_length must not exceed max_length")
        return self


class AccountPolicy(BaseModel):
    """Account policy untuk sign-in."""

    require_email_confirmation: bool = Field(
        default=False, description="Email harus dikonfirmasi sebelum sign-in"
    )


class RetryPolicy(BaseModel):
    """Retry policy untuk optimistic concurrency conflicts."""

    max_attempts: int = Field(default=5, ge=1, description="Maksimal percobaan commit")
    base_backoff_seconds: float = Field(default=0.05, ge=0, description="Backoff awal")
    max_backoff_seconds: float = Field(default=1.0, ge=0, description="Batas atas backoff")
    zero_rows_as_success: bool = Field(
        default=False, description="Commit tanpa perubahan dianggap sukses"
    )

    def backoff_for(self, attempt: int) -> float:
        """
        Hitung delay exponential untuk attempt tertentu (mulai dari 1).

        Args:
            attempt: Nomor attempt yang baru saja gagal

        Returns:
            Delay dalam detik
        """
        return min(self.base_backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)


class TotpConfig(BaseModel):
    """Konfigurasi TOTP authenticator."""

    issuer: str = Field(default="AuthEngine", description="Nama issuer untuk authenticator app")
    digits: int = Field(default=6, ge=6, le=8, description="Jumlah digit code")
    interval: int = Field(default=30, gt=0, description="Time step dalam detik")
    valid_window: int = Field(default=1, ge=0, description="Toleransi clock skew (step)")


class LocatorConfig(BaseModel):
    """Konfigurasi lookup device dan lokasi."""

    ipinfo_token: Optional[str] = Field(None, description="API token untuk ipinfo.io")
    ipinfo_url: str = Field(default="https://ipinfo.io", description="Base URL ipinfo")
    timeout_seconds: float = Field(default=3.0, gt=0, description="Timeout HTTP lookup")


class Settings(BaseSettings):
    """Konfigurasi AuthEngine utama."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHENGINE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    token: TokenConfig
    password: PasswordPolicy = Field(default_factory=PasswordPolicy)
    account: AccountPolicy = Field(default_factory=AccountPolicy)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    totp: TotpConfig = Field(default_factory=TotpConfig)
    locator: LocatorConfig = Field(default_factory=LocatorConfig)

    # Database
    database_url: str = Field(default="sqlite:///./authengine.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format untuk host scripts"
    )

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Mendapatkan cached settings instance.
    Menggunakan lru_cache untuk memastikan settings hanya di-load sekali.
    """
    return Settings()
