# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for administrative action logging with OpenTelemetry correlation.

Audit writes never fail the request that triggered them: a storage error is
logged and the action proceeds.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any
from opentelemetry import trace
from pymongo.errors import PyMongoError

from .mongodb import MongoDBService, PaginationResult, AUDIT_LOGS
from models.entities import UserContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Never copied into audit snapshots
REDACTED_FIELDS = ("password",)
IGNORED_CHANGE_FIELDS = ("updatedAt", "_id")


class AuditFilters:
    """Filters for audit log queries."""

    def __init__(
        self,
        user_id: Optional[str] = None,
        entity: Optional[str] = None,
        action: Optional[str] = None,
        entity_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ):
        self.user_id = user_id
        self.entity = entity
        self.action = action
        self.entity_id = entity_id
        self.start_date = start_date
        self.end_date = end_date

    def to_mongo_query(self) -> Dict[str, Any]:
        query = {}

        if self.user_id:
            query["userId"] = self.user_id
        if self.entity:
            query["entity"] = self.entity
        if self.action:
            query["action"] = self.action
        if self.entity_id:
            query["entityId"] = self.entity_id

        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["timestamp"] = date_filter

        return query


def _snapshot(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    return {key: value for key, value in document.items() if key not in REDACTED_FIELDS}


class AuditService:
    """Service for audit logging with MongoDB persistence."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = AUDIT_LOGS

    def log_action(
        self,
        user_context: UserContext,
        entity: str,
        entity_id: str,
        action: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Record an administrative action.

        Args:
            user_context: Caller performing the action
            entity: Type of entity acted upon
            entity_id: ID of the entity
            action: Action performed
            before: Stored document before the action
            after: Stored document after the action

        Returns:
            ID of the audit entry, or None if it could not be stored
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            span_context = span.get_span_context()
            before, after = _snapshot(before), _snapshot(after)

            audit_entry = {
                "timestamp": datetime.utcnow(),
                "userId": user_context.user_id,
                "username": user_context.username,
                "entity": entity,
                "entityId": str(entity_id),
                "action": action,
                "before": before,
                "after": after,
                "changes": self._calculate_changes(before, after) if before and after else [],
                "ipAddress": user_context.ip_address,
                "userAgent": user_context.user_agent
            }

            if span_context.is_valid:
                audit_entry["traceId"] = format(span_context.trace_id, "032x")

            span.set_attributes({
                "audit.entity": entity,
                "audit.action": action,
                "audit.user_id": user_context.user_id,
                "audit.entity_id": str(entity_id)
            })

            try:
                audit_id = self.mongo_service.create(self.collection_name, audit_entry)
            except PyMongoError as e:
                span.record_exception(e)
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity": entity,
                        "entity_id": str(entity_id),
                        "action": action,
                        "user_id": user_context.user_id,
                        "error": str(e)
                    }
                )
                return None

            logger.info(
                "Audit trail entry created",
                extra={
                    "audit_id": audit_id,
                    "entity": entity,
                    "entity_id": str(entity_id),
                    "action": action,
                    "user_id": user_context.user_id,
                    "trace_id": audit_entry.get("traceId"),
                    "changes_count": len(audit_entry["changes"])
                }
            )
            return audit_id

    def query_audit_logs(
        self,
        filters: AuditFilters,
        page: int = 1,
        page_size: int = 20
    ) -> PaginationResult:
        """Query audit logs, newest first."""
        with tracer.start_as_current_span("audit.query_logs") as span:
            mongo_filters = filters.to_mongo_query()
            span.set_attributes({
                "audit.query.page": page,
                "audit.query.page_size": page_size,
                "audit.query.filters_count": len(mongo_filters)
            })

            return self.mongo_service.paginate(
                self.collection_name,
                page=page,
                page_size=page_size,
                filters=mongo_filters,
                sort_by="timestamp",
                sort_order=-1
            )

    def _calculate_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Field-level differences between two snapshots."""
        changes = []

        for key in sorted(set(before.keys()) | set(after.keys())):
            if key in IGNORED_CHANGE_FIELDS:
                continue

            old_value = before.get(key)
            new_value = after.get(key)
            if old_value != new_value:
                changes.append({
                    "field": key,
                    "old_value": old_value,
                    "new_value": new_value
                })

        return changes
