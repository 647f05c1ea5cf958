"""
User-facing, non-blocking notifications (the console's toasts).
"""
from enum import Enum
from pydantic import BaseModel


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notice(BaseModel):
    level: NoticeLevel = NoticeLevel.INFO
    message: str
    retryable: bool = False

    @classmethod
    def success(cls, message: str) -> "Notice":
        return cls(level=NoticeLevel.SUCCESS, message=message)

    @classmethod
    def error(cls, message: str, retryable: bool = False) -> "Notice":
        return cls(level=NoticeLevel.ERROR, message=message, retryable=retryable)
