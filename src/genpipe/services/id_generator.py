"""Prefixed ID generation utility."""

import uuid

RESULT_ID_PREFIX = "gen_"
EVENT_ID_PREFIX = "evt_"


def generate_id(prefix: str, length: int = 16) -> str:
    """Generate an opaque id such as ``gen_a1b2c3d4e5f6a7b8``.

    Result ids are handed to clients before any work runs, so they carry no
    information about the target.
    """
    return f"{prefix}{uuid.uuid4().hex[:length]}"
