"""
Two-factor authentication service untuk AuthEngine.
Menangani TOTP code generation/verification dan authenticator enrollment material.
"""

import base64
import io
from datetime import datetime
from typing import Optional

import pyotp
import qrcode

from authengine.core.config import TotpConfig
from authengine.schemas.auth import AuthenticatorSetup


class TotpProvider:
    """
    TOTP provider (RFC 6238) di atas pyotp.

    Verifikasi menerima code dari time step saat ini dan valid_window step
    di sekitarnya (default ±1) untuk clock skew.
    """

    def __init__(self, config: Optional[TotpConfig] = None):
        """
        Initialize TOTP provider.

        Args:
            config: TOTP configuration
        """
        self.config = config or TotpConfig()

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=self.config.digits, interval=self.config.interval)

    @staticmethod
    def generate_secret() -> str:
        """Generate base32 secret baru."""
        return pyotp.random_base32()

    def generate_code(self, secret: str, at_time: Optional[datetime] = None) -> str:
        """
        Generate code untuk time step dari at_time.

        Args:
            secret: Base32 shared secret
            at_time: Waktu; default sekarang

        Returns:
            Numeric code
        """
        totp = self._totp(secret)
        if at_time is None:
            return totp.now()
        return totp.at(at_time)

    def verify_code(
        self,
        code: str,
        secret: str,
        at_time: Optional[datetime] = None
    ) -> bool:
        """
        Verify TOTP code.

        Args:
            code: Code dari user
            secret: Base32 shared secret
            at_time: Waktu verifikasi; default sekarang

        Returns:
            True jika valid
        """
        if not secret or not code:
            return False

        # Remove spaces and ensure digits
        code = str(code).replace(" ", "").strip()
        if not code.isdigit() or len(code) != self.config.digits:
            return False

        return self._totp(secret).verify(
            code,
            for_time=at_time,
            valid_window=self.config.valid_window
        )

    def setup_enrollment(
        self,
        issuer: Optional[str],
        account_label: str,
        secret: str
    ) -> AuthenticatorSetup:
        """
        Format secret menjadi manual key dan QR payload (otpauth://).
        Tidak mengubah persisted state.

        Args:
            issuer: Nama issuer; default dari config
            account_label: Label account (biasanya email)
            secret: Base32 secret

        Returns:
            AuthenticatorSetup
        """
        provisioning_uri = self._totp(secret).provisioning_uri(
            name=account_label,
            issuer_name=issuer or self.config.issuer
        )
        return AuthenticatorSetup(
            manual_entry_key=secret,
            provisioning_uri=provisioning_uri,
            qr_code=self._generate_qr_code(provisioning_uri)
        )

    def _generate_qr_code(self, data: str) -> str:
        """
        Generate QR code as base64 data URI.

        Args:
            data: Data to encode in QR

        Returns:
            Base64 encoded QR code image
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        img_str = base64.b64encode(buffer.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
