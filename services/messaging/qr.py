"""Terminal rendering for one-time pairing codes."""

from __future__ import annotations

import io
import sys
from typing import Optional, TextIO

import qrcode


def render_qr_ascii(code: str) -> str:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        border=1,
    )
    qr.add_data(code)
    qr.make(fit=True)

    buf = io.StringIO()
    qr.print_ascii(out=buf, invert=True)
    return buf.getvalue()


def print_qr(code: str, out: Optional[TextIO] = None) -> None:
    """Print a scannable QR code for the operator's phone."""
    out = out or sys.stdout
    out.write("QR code received, please scan it with your phone:\n")
    out.write(render_qr_ascii(code))
    out.flush()
