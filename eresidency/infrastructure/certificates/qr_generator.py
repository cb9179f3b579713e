"""
QR certificate generator.

Renders a verification payload as a PNG or SVG QR code, either persisted
under the certificate storage or returned inline as a data URL.
"""

import asyncio
import base64
import io
import re
import uuid
from typing import List, Literal

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError
from qrcode.image.svg import SvgPathImage
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from eresidency.core.exceptions import ValidationError
from eresidency.core.logging import get_logger
from eresidency.infrastructure.storage.file_storage import FileStorage, certificate_storage

logger = get_logger(__name__)

ERROR_CORRECTION_LEVELS = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

_LEVEL_ALIASES = {"LOW": "L", "MEDIUM": "M", "QUARTILE": "Q", "HIGH": "H"}
_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")

MIME_TYPES = {"png": "image/png", "svg": "image/svg+xml"}


class QRCodeOptions(BaseModel):
    """Rendering options for a QR certificate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    format: Literal["png", "svg"] = Field(default="png", description="Raster or vector output")
    width: int = Field(default=200, ge=21, le=4096, description="Maximum width in pixels")
    margin: int = Field(default=1, ge=0, le=64, description="Quiet zone in modules")
    color_dark: str = Field(default="#000000", description="Foreground color")
    color_light: str = Field(default="#ffffff", description="Background color")
    error_correction: str = Field(default="M", description="L, M, Q, H or low, medium, quartile, high")

    @field_validator("color_dark", "color_light")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not _HEX_COLOR.match(v):
            raise ValueError(f"Invalid hex color: {v}")
        return v.lower()

    @field_validator("error_correction")
    @classmethod
    def validate_error_correction(cls, v: str) -> str:
        level = v.strip().upper()
        level = _LEVEL_ALIASES.get(level, level)
        if level not in ERROR_CORRECTION_LEVELS:
            raise ValueError(f"Invalid error correction level: {v}")
        return level


class GeneratedCertificate(BaseModel):
    """A persisted certificate artifact."""

    url: str = Field(..., description="Public relative URL")
    storage_path: str = Field(..., description="Storage-relative path")
    format: str = Field(..., description="png or svg")


class QRCertificateGenerator:
    """Encodes payloads as QR codes and persists them."""

    def __init__(self, storage: FileStorage):
        self.storage = storage

    def _build(self, payload: str, options: QRCodeOptions) -> qrcode.QRCode:
        if not payload:
            raise ValidationError("Certificate payload must not be empty")

        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECTION_LEVELS[options.error_correction],
            box_size=1,
            border=options.margin,
        )
        qr.add_data(payload)
        try:
            qr.make(fit=True)
        except DataOverflowError:
            raise ValidationError(
                "Certificate payload too large for a QR code",
                {"length": len(payload), "error_correction": options.error_correction},
            )
        # Scale modules so the rendered image is at most the requested width
        required = qr.modules_count + 2 * options.margin
        if options.width < required:
            raise ValidationError(
                "Requested width too small for the certificate payload",
                {"width": options.width, "min_width": required},
            )
        qr.box_size = options.width // required
        return qr

    def encode_matrix(self, payload: str, options: QRCodeOptions = None) -> List[List[bool]]:
        """Module matrix for a payload, including the quiet zone."""
        return self._build(payload, options or QRCodeOptions()).get_matrix()

    def render(self, payload: str, options: QRCodeOptions = None) -> bytes:
        """
        Render a QR code to bytes.

        Args:
            payload: Verification payload, typically a public verification URL
            options: Rendering options

        Returns:
            bytes: PNG or SVG document
        """
        options = options or QRCodeOptions()
        qr = self._build(payload, options)

        if options.format == "svg":
            factory = type(
                "ColoredSvgPathImage",
                (SvgPathImage,),
                {
                    "background": options.color_light,
                    "QR_PATH_STYLE": {
                        **SvgPathImage.QR_PATH_STYLE,
                        "fill": options.color_dark,
                    },
                },
            )
            img = qr.make_image(image_factory=factory)
        else:
            img = qr.make_image(fill_color=options.color_dark, back_color=options.color_light)

        buffer = io.BytesIO()
        img.save(buffer)
        return buffer.getvalue()

    def render_data_url(self, payload: str, options: QRCodeOptions = None) -> str:
        """Inline data URL for previews. Nothing is written to storage."""
        options = options or QRCodeOptions()
        encoded = base64.b64encode(self.render(payload, options)).decode()
        return f"data:{MIME_TYPES[options.format]};base64,{encoded}"

    async def generate(self, payload: str, options: QRCodeOptions = None) -> GeneratedCertificate:
        """
        Render and persist a QR certificate under a fresh random name.

        Returns:
            GeneratedCertificate: URL and storage path of the artifact
        """
        options = options or QRCodeOptions()
        content = await asyncio.to_thread(self.render, payload, options)
        storage_path = await self.storage.save_bytes(
            f"qrcode-{uuid.uuid4()}.{options.format}", content
        )
        logger.info(f"Generated QR certificate: {storage_path}")
        return GeneratedCertificate(
            url=self.storage.url_for(storage_path),
            storage_path=storage_path,
            format=options.format,
        )

    async def delete(self, storage_path: str) -> bool:
        """Delete a certificate. Returns False if it was already gone."""
        return await self.storage.delete(storage_path)


# Global generator instance
qr_certificate_generator = QRCertificateGenerator(certificate_storage)
