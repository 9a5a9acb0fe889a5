from enum import Enum


class NoticeVariant(str, Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    DESTRUCTIVE = "destructive"
