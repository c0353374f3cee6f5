from contextlib import contextmanager
from enum import Enum
from functools import wraps
from inspect import iscoroutinefunction
from os import environ

from opentelemetry import trace
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace import Status, StatusCode
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars, unbind_contextvars

MODULE_NAME = "campus-reminder"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to track a user session in the logs and traces.
    """

    AUTH_STATE = "auth.state"
    """Authentication state of the session."""
    ENTITY_ID = "entity.id"
    """Technical identifier of the row being read or written."""
    ENTITY_TABLE = "entity.table"
    """Table of the row being read or written."""
    USER_ID = "user.id"
    """Technical user identifier."""

    @property
    def is_session(self) -> bool:
        """
        Whether the attribute describes the session and lasts across calls.

        Only those are bound to the logging context, others are set on the span only.
        """
        return self in (SpanAttributeEnum.AUTH_STATE, SpanAttributeEnum.USER_ID)

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        """
        Set an attribute on the current span.
        """
        # Enrich logging
        if self.is_session:
            bind_contextvars(**{self.value: value})

        # Enrich span
        span = trace.get_current_span()
        if span == INVALID_SPAN:
            return
        span.set_attribute(self.value, value)

    def clear(self) -> None:
        """
        Remove the attribute from the logging context.

        Spans are short-lived, only the logging context needs cleanup.
        """
        unbind_contextvars(self.value)


# Instrument sqlite, aiosqlite runs the standard driver in a thread
SQLite3Instrumentor().instrument()

# Attributes
_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Create a tracer that will be used across the application, no-op until the host app installs an SDK
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator to start an OTEL span for the function and set it as the current.
    """

    def _wrapper(func):
        @wraps(func)
        def _inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return func(*args, **kwargs)

        @wraps(func)
        async def _async_inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return await func(*args, **kwargs)

        return _async_inner if iscoroutinefunction(func) else _inner

    return _wrapper


@contextmanager
def suppress(*exceptions):
    """
    Context manager to suppress exceptions, while also logging them properly in OTEL.

    OTEL span will always be set to OK status, even if an exception occurs. But exception will still be recorded.
    """
    try:
        # Try executing the block
        yield
    # If an exception occurs, set the span status to OK and record the exception
    except exceptions as e:
        span = trace.get_current_span()
        span.set_status(Status(StatusCode.OK))
        span.record_exception(e)
