"""QR rendering of pairing payloads.

The browser side of pairing shows the payload as a QR code; this renders
the same JSON text for terminals and PNG files.
"""

import io

import qrcode
from qrcode.main import QRCode

from webpair.pairing.payload import PairingRequest, encode_payload


class PayloadQr:
    """Render a pairing request as a QR code."""

    def __init__(self, request: PairingRequest):
        self.request = request

    def _create_qr(self) -> QRCode:
        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(encode_payload(self.request))
        qr.make(fit=True)
        return qr

    def to_terminal(self) -> str:
        """ASCII art for terminal display."""
        output = io.StringIO()
        self._create_qr().print_ascii(out=output, invert=True)
        return output.getvalue()

    def to_png(self, path: str) -> None:
        """Save as PNG. Needs Pillow (the ``png`` extra)."""
        img = self._create_qr().make_image(fill_color="black", back_color="white")
        img.save(path)
