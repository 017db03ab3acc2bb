"""
Observability Middleware

Flask middleware adding OpenTelemetry instrumentation and request logging.
Requests are logged against their route template so that, for example,
every token request shows up as ``/api/services/<id>/token``.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor


def _route_template() -> str:
    rule = request.url_rule
    return rule.rule if rule is not None else request.path


def add_observability_middleware(app: Flask):
    """Add OpenTelemetry instrumentation and request logging to Flask app."""

    FlaskInstrumentor().instrument_app(app)

    logger = logging.getLogger(__name__)

    @app.before_request
    def start_request_timer():
        g.start_time = time.perf_counter()
        g.trace_id = None

        span = trace.get_current_span()
        if span.is_recording():
            g.trace_id = format(span.get_span_context().trace_id, "032x")
            attributes = {
                "http.route": _route_template(),
                "http.remote_addr": request.remote_addr or ""
            }
            # Path ids identify the service, bundle or key being acted on
            if request.view_args and "id" in request.view_args:
                attributes["sewa.resource_id"] = str(request.view_args["id"])
            span.set_attributes(attributes)

    @app.after_request
    def log_completed_request(response):
        duration_ms = round((time.perf_counter() - g.get('start_time', time.perf_counter())) * 1000, 2)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attributes({
                "http.status_code": response.status_code,
                "http.duration_ms": duration_ms
            })

        level = logging.INFO
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING

        # Streamed files (PDF receipts, uploads) report no length until sent
        logger.log(
            level,
            "HTTP request completed",
            extra={
                "method": request.method,
                "route": _route_template(),
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "trace_id": g.get('trace_id'),
                "request_size": request.content_length or 0,
                "response_size": response.content_length
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
