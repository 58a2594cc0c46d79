"""Rendering of pairing payloads as QR codes."""

from __future__ import annotations

import base64
import io
from typing import Protocol

import qrcode
from qrcode.constants import ERROR_CORRECT_H
from qrcode.image.svg import SvgPathImage


class PairingRenderer(Protocol):
    def render(self, pairing_uri: str) -> str:
        """Return a displayable representation of *pairing_uri*."""


class QRCodeRenderer:
    """Render the pairing string into an SVG QR code data URL."""

    def __init__(self, box_size: int = 10, border: int = 4) -> None:
        self.box_size = box_size
        self.border = border

    def render(self, pairing_uri: str) -> str:
        code = qrcode.QRCode(
            error_correction=ERROR_CORRECT_H,
            box_size=self.box_size,
            border=self.border,
            image_factory=SvgPathImage,
        )
        code.add_data(pairing_uri)
        code.make(fit=True)
        buffer = io.BytesIO()
        code.make_image().save(buffer)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"
