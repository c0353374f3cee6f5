from logging import DEBUG, Logger, _nameToLevel, basicConfig, getLogger

from structlog import (
    configure_once,
    get_logger as structlog_get_logger,
    make_filtering_bound_logger,
)
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    UnicodeDecoder,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import PositionalArgumentsFormatter
from structlog.typing import Processor

from campus_reminder.helpers.config import CONFIG
from campus_reminder.helpers.config_models.monitoring import RendererEnum

_config = CONFIG.monitoring.logging

# Default logging level for all the dependencies
basicConfig(level=_config.sys_level.value)

# The driver logs each statement at debug level
getLogger("aiosqlite").setLevel(DEBUG if _config.sql_statements else _config.sys_level.value)

_renderers: list[Processor] = (
    [
        # Exceptions as strings, JSON cannot hold tracebacks
        format_exc_info,
        JSONRenderer(),
    ]
    if _config.renderer == RendererEnum.JSON
    else [
        # Pretty printing in a terminal session
        ConsoleRenderer(),
    ]
)

configure_once(
    cache_logger_on_first_use=True,
    context_class=dict,
    wrapper_class=make_filtering_bound_logger(_nameToLevel[_config.app_level.value]),
    processors=[
        # User and entity ids are bound in the context, see SpanAttributeEnum
        merge_contextvars,
        add_log_level,
        # Enable %s-style formatting
        PositionalArgumentsFormatter(),
        TimeStamper(fmt="iso", utc=True),
        StackInfoRenderer(),
        UnicodeDecoder(),
        *_renderers,
    ],
)

# Framework does not exactly expose Logger, but that's easier to work with
logger: Logger = structlog_get_logger("campus-reminder")
