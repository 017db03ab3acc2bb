# SPDX-License-Identifier: Apache-2.0

"""
Daily token ledger logic.

Pure functions deciding whether a service may issue another same-day queue
token, what its current availability is, and how administrative edits affect
the counters. Nothing here touches storage: callers read a ``TokenState``,
apply one of these functions, and persist the result atomically.

The ledger resets lazily. There is no background job; a counter whose
``last_token_reset`` belongs to an earlier calendar day is treated as zero
the first time it is read or written on a new day.
"""

from dataclasses import dataclass, replace
from datetime import datetime, date, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from models.enums import TokenAvailability

UTC = timezone.utc


class TokenLedgerError(Exception):
    """Base class for token ledger failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TokensDisabled(TokenLedgerError):
    """Token issuance is switched off for the service."""

    def __init__(self, message: str = "Tokens are not enabled for this service"):
        super().__init__(message)


class LimitReached(TokenLedgerError):
    """The service has issued its full daily allowance."""

    def __init__(self, message: str = "Daily token limit reached. Please try again tomorrow."):
        super().__init__(message)


class PersistenceFailure(TokenLedgerError):
    """The counter update could not be stored; no token was issued."""

    def __init__(self, message: str = "Could not issue a token right now. Please try again."):
        super().__init__(message)


@dataclass(frozen=True)
class TokenState:
    """Token fields embedded in a service document."""
    tokens_enabled: bool
    daily_token_limit: int
    tokens_issued: int
    last_token_reset: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TokenState":
        """Build state from a stored service, applying schema defaults."""
        return cls(
            tokens_enabled=bool(doc.get("tokensEnabled", False)),
            daily_token_limit=int(doc.get("dailyTokenLimit") or 0),
            tokens_issued=int(doc.get("tokensIssued") or 0),
            last_token_reset=doc.get("lastTokenReset") or doc.get("createdAt") or datetime.utcnow()
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "tokensEnabled": self.tokens_enabled,
            "dailyTokenLimit": self.daily_token_limit,
            "tokensIssued": self.tokens_issued,
            "lastTokenReset": self.last_token_reset
        }


@dataclass(frozen=True)
class TokenDecision:
    """Accepted token request: the token number and the state to persist."""
    token_number: int
    state: TokenState
    reset_applied: bool


@dataclass(frozen=True)
class TokenStatus:
    """Availability snapshot returned to citizens."""
    tokens_enabled: bool
    tokens_available: int
    tokens_issued: int
    daily_limit: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokensEnabled": self.tokens_enabled,
            "tokensAvailable": self.tokens_available,
            "tokensIssued": self.tokens_issued,
            "dailyLimit": self.daily_limit
        }


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve the zone in which ledger days are counted.

    Args:
        name: IANA zone name such as "Asia/Kathmandu"; empty means UTC

    Raises:
        ValueError: If the zone is unknown
    """
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {name}") from e


def as_utc(moment: datetime) -> datetime:
    """Stored datetimes are UTC; naive values read back from MongoDB are too."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def calendar_date(moment: datetime, tz: tzinfo = UTC) -> date:
    """Date component of a moment, as seen in the ledger zone."""
    return as_utc(moment).astimezone(tz).date()


def is_new_day(last_token_reset: datetime, now: datetime, tz: tzinfo = UTC) -> bool:
    return calendar_date(now, tz) != calendar_date(last_token_reset, tz)


def effective_issued(state: TokenState, now: datetime, tz: tzinfo = UTC) -> int:
    """Tokens issued today; a counter from an earlier day counts as zero."""
    if is_new_day(state.last_token_reset, now, tz):
        return 0
    return state.tokens_issued


def request_token(state: TokenState, now: datetime, tz: tzinfo = UTC) -> TokenDecision:
    """
    Decide whether one more token may be issued.

    Args:
        state: Token fields as currently stored
        now: Moment of the request
        tz: Zone in which calendar days are counted

    Returns:
        TokenDecision with the 1-based token number for the day and the
        state that must be written for the issuance to count

    Raises:
        TokensDisabled: If issuance is switched off
        LimitReached: If today's allowance is used up
    """
    if not state.tokens_enabled:
        raise TokensDisabled()

    new_day = is_new_day(state.last_token_reset, now, tz)
    issued = 0 if new_day else state.tokens_issued

    if issued >= state.daily_token_limit:
        raise LimitReached()

    token_number = issued + 1
    next_state = replace(
        state,
        tokens_issued=token_number,
        last_token_reset=now if new_day else state.last_token_reset
    )
    return TokenDecision(token_number=token_number, state=next_state, reset_applied=new_day)


def query_status(state: TokenState, now: datetime, tz: tzinfo = UTC) -> TokenStatus:
    """Report availability without persisting any lazy reset."""
    if not state.tokens_enabled:
        return TokenStatus(tokens_enabled=False, tokens_available=0, tokens_issued=0, daily_limit=0)

    issued = effective_issued(state, now, tz)
    return TokenStatus(
        tokens_enabled=True,
        tokens_available=max(0, state.daily_token_limit - issued),
        tokens_issued=issued,
        daily_limit=state.daily_token_limit
    )


def availability(state: TokenState, now: datetime, tz: tzinfo = UTC) -> TokenAvailability:
    if not state.tokens_enabled:
        return TokenAvailability.DISABLED
    if effective_issued(state, now, tz) >= state.daily_token_limit:
        return TokenAvailability.EXHAUSTED
    return TokenAvailability.AVAILABLE


def reconfigure(state: TokenState, new_enabled: bool, new_limit: int, now: datetime) -> TokenState:
    """
    Apply an administrative change to the token settings.

    Any change to the enabled flag or the limit starts a fresh day count;
    an edit that leaves both untouched keeps the counters as they are.
    """
    if new_limit < 0:
        raise ValueError("dailyTokenLimit cannot be negative")

    if new_enabled == state.tokens_enabled and new_limit == state.daily_token_limit:
        return state

    return TokenState(
        tokens_enabled=new_enabled,
        daily_token_limit=new_limit,
        tokens_issued=0,
        last_token_reset=now
    )


def normalize_token_settings(tokens_enabled: Any, daily_token_limit: Any) -> Tuple[bool, int]:
    """
    Coerce admin form input into ledger settings.

    ``tokens_enabled`` is true only for ``True`` or the string ``"true"``.
    The limit is parsed as an integer; anything unparseable or negative
    becomes 0, and a disabled ledger always gets 0.
    """
    enabled = tokens_enabled is True or (
        isinstance(tokens_enabled, str) and tokens_enabled.strip().lower() == "true"
    )
    if not enabled:
        return False, 0

    try:
        limit = int(str(daily_token_limit).strip())
    except (TypeError, ValueError):
        limit = 0

    return True, max(0, limit)
