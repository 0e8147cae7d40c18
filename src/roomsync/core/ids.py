"""Participant and origin identifier generation."""

from __future__ import annotations

import random
import re

from ulid import ULID

_ORIGIN_ID_RE = re.compile(r"^prov_[0-9A-HJKMNP-TV-Z]{26}$", re.IGNORECASE)


def generate_client_id() -> int:
    """Return a random 32-bit participant identifier.

    Participant IDs travel as varuints inside awareness updates, so they
    are plain integers rather than ULIDs.
    """
    return random.getrandbits(32)


def generate_origin_id() -> str:
    """Generate a provider origin tag with the ``prov_`` prefix."""
    return f"prov_{ULID()}"


def generate_peer_id() -> str:
    """Generate a relay-side peer ID with the ``peer_`` prefix."""
    return f"peer_{ULID()}"


def validate_origin_id(origin: str) -> bool:
    """Return ``True`` if *origin* looks like a ``prov_<ulid>`` tag."""
    return isinstance(origin, str) and bool(_ORIGIN_ID_RE.match(origin))
