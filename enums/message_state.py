from enum import Enum


class MessageState(str, Enum):
    """
    Lifecycle of a message entry in the local conversation mirror.

    PENDING: optimistic send or broadcast echo, not yet matched to a stored row
    CONFIRMED: backed by a stored row
    REJECTED: the insert failed, entry is dropped from the view
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
