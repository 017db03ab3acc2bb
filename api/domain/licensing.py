# SPDX-License-Identifier: Apache-2.0

"""
License key domain logic: key generation and redemption checks.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from models.entities import LicenseKey

KEY_PREFIX = "LIC"
SUFFIX_LENGTH = 9
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
MAX_KEYS_PER_BATCH = 100


@dataclass
class RedemptionResult:
    """Outcome of checking a license key for registration."""
    valid: bool
    error_message: Optional[str] = None


def generate_license_key(now: Optional[datetime] = None) -> str:
    """
    Generate a license key of the form ``LIC-<epoch ms>-<9 chars>``.

    Args:
        now: Issue time; defaults to the current UTC time

    Returns:
        New license key string
    """
    moment = now or datetime.utcnow()
    epoch_ms = int((moment - datetime(1970, 1, 1)).total_seconds() * 1000)
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{KEY_PREFIX}-{epoch_ms}-{suffix}"


def generate_license_keys(count: int, now: Optional[datetime] = None) -> List[str]:
    """Generate a batch of distinct license keys."""
    if count < 1 or count > MAX_KEYS_PER_BATCH:
        raise ValueError(f"count must be between 1 and {MAX_KEYS_PER_BATCH}")

    keys: List[str] = []
    while len(keys) < count:
        key = generate_license_key(now)
        if key not in keys:
            keys.append(key)
    return keys


def check_redeemable(license_key: Optional[LicenseKey], now: Optional[datetime] = None) -> RedemptionResult:
    """
    Check that a license key can be used to register an organization.

    Args:
        license_key: Stored key, or None if no such key exists
        now: Time of the check

    Returns:
        RedemptionResult with the client-facing reason when invalid
    """
    if license_key is None or license_key.is_used:
        return RedemptionResult(valid=False, error_message="Invalid or already used license key")

    if license_key.is_expired(now):
        return RedemptionResult(valid=False, error_message="License key has expired")

    return RedemptionResult(valid=True)


def can_delete(license_key: LicenseKey) -> bool:
    """Used keys stay on record; only unused keys may be deleted."""
    return not license_key.is_used
