# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request validation error formatting.

flask-openapi3 validates path, query and body models before a view runs;
``ValidationMiddleware.openapi_error_callback`` turns its pydantic errors
into RFC 7807 problem documents.
"""

from flask import request, jsonify, make_response
from typing import Dict, Any, List, Optional
from pydantic import ValidationError
from opentelemetry import trace
import logging

from services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _first_message(errors: List[Dict[str, Any]]) -> Optional[str]:
    if not errors:
        return None
    message = errors[0]["message"]
    # pydantic prefixes messages raised from validators
    return message[len("Value error, "):] if message.startswith("Value error, ") else message


class ValidationMiddleware:
    """Formats request validation failures."""

    def __init__(self, base_url: str):
        self.hal_formatter = HalFormatter(base_url)

    def format_validation_errors(self, validation_error: ValidationError) -> List[Dict[str, Any]]:
        """
        Format Pydantic validation errors for API response.

        Args:
            validation_error: Pydantic ValidationError

        Returns:
            List of formatted error dictionaries
        """
        errors = []

        for error in validation_error.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field_path,
                "message": error["msg"],
                "type": error["type"]
            })

        return errors

    def build_error_response(self, validation_error: ValidationError) -> Dict[str, Any]:
        """Problem document whose detail is the first error message."""
        errors = self.format_validation_errors(validation_error)
        detail = _first_message(errors) or "Request validation failed"
        return self.hal_formatter.format_validation_error(detail, request.path, errors)

    def openapi_error_callback(self, validation_error: ValidationError):
        """``validation_error_callback`` for flask-openapi3."""
        with tracer.start_as_current_span("validation.request_rejected") as span:
            error_response = self.build_error_response(validation_error)
            span.set_attributes({
                "validation.error_count": len(error_response.get("errors", [])),
                "http.path": request.path
            })

            logger.info(
                "Request validation failed",
                extra={
                    "path": request.path,
                    "method": request.method,
                    "errors": error_response.get("errors", [])
                }
            )

            return make_response(jsonify(error_response), 400)
