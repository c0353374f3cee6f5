from enum import Enum

from pydantic import BaseModel


class LoggingLevelEnum(str, Enum):
    # See: https://docs.python.org/3.13/library/logging.html#logging-levels
    CRITICAL = "CRITICAL"
    DEBUG = "DEBUG"
    ERROR = "ERROR"
    INFO = "INFO"
    WARNING = "WARNING"


class RendererEnum(str, Enum):
    CONSOLE = "console"
    """Colored, human readable lines."""
    JSON = "json"
    """One JSON object per line, for log files."""


class LoggingModel(BaseModel):
    app_level: LoggingLevelEnum = LoggingLevelEnum.INFO
    """Level of the application logger."""
    renderer: RendererEnum = RendererEnum.CONSOLE
    sql_statements: bool = False
    """Log every SQL statement sent to the database, whatever `sys_level` is."""
    sys_level: LoggingLevelEnum = LoggingLevelEnum.WARNING
    """Level of the dependencies."""


class MonitoringModel(BaseModel):
    logging: LoggingModel = LoggingModel()  # Object is fully defined by default
