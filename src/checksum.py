"""
Configuration fingerprints.

A fingerprint is the SHA-256 of the canonical JSON form of a configuration.
Resources only ever compare fingerprints; they never diff configurations.
"""

import dataclasses
import hashlib
import json
from typing import Any


def _canonical(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def compute_checksum(configuration: Any) -> str:
    """Calculate the fingerprint of a configuration (dict or dataclass)."""
    payload = json.dumps(_canonical(configuration), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


def is_up_to_date(recorded: str, desired: str) -> bool:
    """True when the recorded fingerprint matches the desired one."""
    return recorded == desired
