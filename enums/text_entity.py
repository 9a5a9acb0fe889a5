from enum import Enum


class TextEntity(Enum):
    """Top-level sections of the l10n files."""
    USER = 1
    VENDOR = 2
    COMMON = 4
