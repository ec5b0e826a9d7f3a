from __future__ import annotations

import base64
import io
from pathlib import Path

import qrcode
from PIL import Image

QR_SETTINGS = {
    "error_correction": qrcode.constants.ERROR_CORRECT_M,
    "box_size": 10,
    "border": 2,
    "fill_color": "black",
    "back_color": "white",
}
QR_DISPLAY_WIDTH = 300


def render_qr(payload: str, *, width: int = QR_DISPLAY_WIDTH) -> Image.Image:
    """Render ``payload`` as a square QR image ``width`` pixels wide."""

    qr = qrcode.QRCode(
        version=None,
        error_correction=QR_SETTINGS["error_correction"],
        box_size=QR_SETTINGS["box_size"],
        border=QR_SETTINGS["border"],
    )
    qr.add_data(payload)
    qr.make(fit=True)

    image = qr.make_image(fill_color=QR_SETTINGS["fill_color"], back_color=QR_SETTINGS["back_color"])
    pil_image = image.get_image().convert("RGB")
    if width and pil_image.width != width:
        pil_image = pil_image.resize((width, width), Image.NEAREST)
    return pil_image


def to_png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_url(image: Image.Image) -> str:
    encoded = base64.b64encode(to_png_bytes(image)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def save_qr(image: Image.Image, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path
