"""Placeholder QR code identifiers for registered vehicles."""

from __future__ import annotations

import time
from typing import Callable, Optional

PLACEHOLDER_PREFIX = "QR"


def placeholder_qr_code(data: object, *, clock: Optional[Callable[[], float]] = None) -> str:
    """Return a stand-in QR code value of the form ``QR-<data>-<epoch millis>``.

    This is not a real identifier scheme: values are neither guaranteed to be
    unique nor scannable. Two calls within the same millisecond for the same
    input return the same string.
    """

    now = (clock or time.time)()
    return f"{PLACEHOLDER_PREFIX}-{data}-{int(now * 1000)}"


__all__ = ["PLACEHOLDER_PREFIX", "placeholder_qr_code"]
