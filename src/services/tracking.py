"""Public tracking identifiers.

A tracking id (``GRV-7K2Q-M9XA``) lets a submitter, anonymous or not,
look up a grievance's status without signing in.  Segments are drawn
from a 36-character alphabet with :mod:`secrets`, giving 36**8 possible
ids; the store rejects the rare duplicate and the caller retries.
"""

from __future__ import annotations

import re
import secrets
import string
from typing import Final

TRACKING_PREFIX: Final[str] = "GRV"
_ALPHABET: Final[str] = string.ascii_uppercase + string.digits
_SEGMENT_LENGTH: Final[int] = 4

TRACKING_ID_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"^{TRACKING_PREFIX}-[A-Z0-9]{{{_SEGMENT_LENGTH}}}-[A-Z0-9]{{{_SEGMENT_LENGTH}}}$"
)


def _segment() -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(_SEGMENT_LENGTH))


def generate_tracking_id() -> str:
    """Return a fresh ``GRV-XXXX-XXXX`` identifier."""
    return f"{TRACKING_PREFIX}-{_segment()}-{_segment()}"


def is_valid_tracking_id(value: str) -> bool:
    return bool(TRACKING_ID_PATTERN.match(value))
