# SPDX-License-Identifier: Apache-2.0

"""
Token ledger persistence.

Issues same-day queue tokens for services stored in MongoDB. Each request
reads the service's token fields, decides with the pure functions in
``domain.tokens`` and writes back with a compare-and-set on exactly the
values it read. Concurrent requests, including ones served by other
processes, therefore cannot both claim the last token: the loser sees no
matching document, re-reads and decides again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pymongo.errors import PyMongoError

from domain.tokens import (
    UTC,
    TokenState,
    TokenStatus,
    PersistenceFailure,
    TokensDisabled,
    LimitReached,
    request_token,
    query_status,
    reconfigure,
    availability
)
from models.enums import TokenAvailability
from services.mongodb import MongoDBService, SERVICES

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
TOKEN_FIELDS = ("tokensEnabled", "dailyTokenLimit", "tokensIssued", "lastTokenReset")


class ServiceNotFound(Exception):
    """Raised when the service to act on does not exist."""

    def __init__(self, service_id: str):
        super().__init__(f"Service not found: {service_id}")
        self.service_id = service_id


@dataclass
class IssuedToken:
    """A token that has been durably counted."""
    token_number: int
    service: Dict[str, Any]
    issued_at: datetime


class TokenLedgerService:
    """
    Storage-backed token ledger.

    Args:
        mongodb_service: MongoDB access layer
        tz: Zone in which calendar days are counted
        max_attempts: Compare-and-set attempts before giving up
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        mongodb_service: MongoDBService,
        tz: tzinfo = UTC,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.mongodb_service = mongodb_service
        self.tz = tz
        self.max_attempts = max(1, max_attempts)
        self.clock = clock or datetime.utcnow

    @staticmethod
    def _expected(service: Dict[str, Any]) -> Dict[str, Any]:
        # None also matches fields absent from older documents
        return {field: service.get(field) for field in TOKEN_FIELDS}

    def _load(self, service_id: str) -> Dict[str, Any]:
        try:
            service = self.mongodb_service.find_by_id(SERVICES, service_id)
        except PyMongoError as e:
            logger.error(
                "Failed to read service token state",
                extra={"service_id": service_id, "error": str(e)}
            )
            raise PersistenceFailure() from e

        if service is None:
            raise ServiceNotFound(service_id)
        return service

    def request_token(self, service_id: str) -> IssuedToken:
        """
        Issue the next token for a service.

        Returns:
            IssuedToken with the token number and the updated service

        Raises:
            ServiceNotFound: If the service does not exist
            TokensDisabled: If the service does not issue tokens
            LimitReached: If today's allowance is used up
            PersistenceFailure: If the counter could not be updated
        """
        with tracer.start_as_current_span(
            "token_ledger.request_token",
            attributes={"service.id": service_id}
        ) as span:
            for attempt in range(1, self.max_attempts + 1):
                service = self._load(service_id)
                state = TokenState.from_document(service)
                now = self.clock()

                try:
                    decision = request_token(state, now, self.tz)
                except (TokensDisabled, LimitReached) as e:
                    span.set_attribute("token.result", type(e).__name__)
                    logger.info(
                        "Token request rejected",
                        extra={
                            "service_id": service_id,
                            "reason": type(e).__name__,
                            "daily_limit": state.daily_token_limit
                        }
                    )
                    raise

                try:
                    updated = self.mongodb_service.compare_and_set(
                        SERVICES,
                        service["_id"],
                        self._expected(service),
                        decision.state.to_document()
                    )
                except PyMongoError as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, "token update failed"))
                    logger.error(
                        "Failed to persist token issuance",
                        extra={"service_id": service_id, "attempt": attempt, "error": str(e)}
                    )
                    raise PersistenceFailure() from e

                if updated is not None:
                    span.set_attributes({
                        "token.result": "issued",
                        "token.number": decision.token_number,
                        "token.attempts": attempt,
                        "token.reset_applied": decision.reset_applied
                    })
                    logger.info(
                        "Token issued",
                        extra={
                            "service_id": service_id,
                            "token_number": decision.token_number,
                            "daily_limit": state.daily_token_limit,
                            "attempts": attempt
                        }
                    )
                    return IssuedToken(
                        token_number=decision.token_number,
                        service=updated,
                        issued_at=now
                    )

                logger.debug(
                    "Token counter changed concurrently, retrying",
                    extra={"service_id": service_id, "attempt": attempt}
                )

            span.set_status(Status(StatusCode.ERROR, "contention"))
            logger.error(
                "Gave up issuing token after repeated contention",
                extra={"service_id": service_id, "attempts": self.max_attempts}
            )
            raise PersistenceFailure()

    def token_status(self, service_id: str) -> TokenStatus:
        """Current availability of a service; never writes."""
        with tracer.start_as_current_span(
            "token_ledger.token_status",
            attributes={"service.id": service_id}
        ):
            service = self._load(service_id)
            return query_status(TokenState.from_document(service), self.clock(), self.tz)

    def update_service(
        self,
        service_id: str,
        fields: Dict[str, Any],
        tokens_enabled: bool,
        daily_token_limit: int,
        owner_id: Optional[str] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Apply an administrative edit, including any token reconfiguration.

        The descriptive fields and the token settings are written in one
        compare-and-set on the token fields that were read, so a changed
        setting and its counter reset land together and a token issued
        concurrently is never silently overwritten.

        Returns:
            Tuple of (service before the edit, service after the edit)

        Raises:
            ServiceNotFound: If no such service is owned by ``owner_id``
            PersistenceFailure: If the update could not be stored
        """
        with tracer.start_as_current_span(
            "token_ledger.update_service",
            attributes={"service.id": service_id}
        ) as span:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    service = self.mongodb_service.find_by_id(SERVICES, service_id, owner_id=owner_id)
                except PyMongoError as e:
                    logger.error("Failed to read service for update", extra={"service_id": service_id, "error": str(e)})
                    raise PersistenceFailure() from e

                if service is None:
                    raise ServiceNotFound(service_id)

                state = TokenState.from_document(service)
                next_state = reconfigure(state, tokens_enabled, daily_token_limit, self.clock())

                updates = dict(fields)
                updates.update(next_state.to_document())

                expected = self._expected(service)
                if owner_id is not None:
                    expected["userId"] = service["userId"]

                try:
                    updated = self.mongodb_service.compare_and_set(SERVICES, service["_id"], expected, updates)
                except PyMongoError as e:
                    span.record_exception(e)
                    logger.error("Failed to persist service update", extra={"service_id": service_id, "error": str(e)})
                    raise PersistenceFailure() from e

                if updated is not None:
                    reset = next_state is not state
                    span.set_attributes({"token.reset_applied": reset, "token.attempts": attempt})
                    if reset:
                        logger.info(
                            "Token settings changed, counters reset",
                            extra={
                                "service_id": service_id,
                                "tokens_enabled": tokens_enabled,
                                "daily_limit": daily_token_limit
                            }
                        )
                    return service, updated

            logger.error(
                "Gave up updating service after repeated contention",
                extra={"service_id": service_id, "attempts": self.max_attempts}
            )
            raise PersistenceFailure()

    def token_availability(self, service: Dict[str, Any]) -> TokenAvailability:
        """Disabled, available or exhausted as of now, from an already loaded service."""
        return availability(TokenState.from_document(service), self.clock(), self.tz)

    def initial_state(self, tokens_enabled: bool, daily_token_limit: int) -> Dict[str, Any]:
        """Token fields for a newly created service."""
        return TokenState(
            tokens_enabled=tokens_enabled,
            daily_token_limit=daily_token_limit if tokens_enabled else 0,
            tokens_issued=0,
            last_token_reset=self.clock()
        ).to_document()
