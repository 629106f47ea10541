"""
QR code and Code128 rendering for pack labels.

Uses qrcode and python-barcode (Pillow writer) to produce PNG bytes that the
print sheet and the label endpoints embed as-is.
"""

import io
import logging

import barcode
import qrcode
from barcode.writer import ImageWriter
from barcode.errors import BarcodeError


logger = logging.getLogger(__name__)

# Label card colours
QR_DARK = "#000000"
QR_LIGHT = "#e6e3db"


class LabelRenderError(Exception):
    """Exception raised when a label image cannot be rendered."""
    pass


def render_qr_png(payload: str, box_size: int = 10, border: int = 1) -> bytes:
    """
    Generate a QR code PNG for a label payload.

    The payload for pack labels is the tracking URL, not the bare label ID.
    """
    if not payload:
        raise LabelRenderError("QR payload is empty")

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color=QR_DARK, back_color=QR_LIGHT)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_barcode_png(label_id: str) -> bytes:
    """Generate a Code128 PNG encoding the raw label ID, without the text line."""
    code128 = barcode.get_barcode_class('code128')
    writer = ImageWriter()

    try:
        barcode_instance = code128(label_id, writer=writer)
    except BarcodeError as e:
        raise LabelRenderError(f"Cannot encode {label_id!r} as Code128: {e}") from e

    # render() returns a PIL Image with ImageWriter
    barcode_img = barcode_instance.render({
        'write_text': False,
        'module_width': 0.4,
        'module_height': 15.0,
        'quiet_zone': 2.5,
        'font_size': 0,
        'text_distance': 0,
        'background': 'white',
        'foreground': 'black',
    })

    buffer = io.BytesIO()
    barcode_img.save(buffer, format="PNG")
    return buffer.getvalue()
