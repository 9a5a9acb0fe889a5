from enum import Enum


class PushPermission(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"
