from enum import Enum


class ReadinessEnum(str, Enum):
    FAIL = "fail"
    """The storage is not ready."""
    OK = "ok"
    """The storage is ready."""
