"""
Lifecycle of message entries in the local conversation mirror.

    PENDING --insert_confirmed--> CONFIRMED
    PENDING --persisted_match---> CONFIRMED
    PENDING --insert_rejected---> REJECTED

CONFIRMED and REJECTED are terminal.
"""

import logging

from enums.message_state import MessageState

logger = logging.getLogger(__name__)


class MessageEvent:
    INSERT_CONFIRMED = "insert_confirmed"
    PERSISTED_MATCH = "persisted_match"
    INSERT_REJECTED = "insert_rejected"


class MessageStateMachine:
    TRANSITIONS: dict[tuple[MessageState, str], MessageState] = {
        (MessageState.PENDING, MessageEvent.INSERT_CONFIRMED): MessageState.CONFIRMED,
        (MessageState.PENDING, MessageEvent.PERSISTED_MATCH): MessageState.CONFIRMED,
        (MessageState.PENDING, MessageEvent.INSERT_REJECTED): MessageState.REJECTED,
    }

    @classmethod
    def next_state(cls, state: MessageState, event: str) -> MessageState:
        """
        Resolve the state after event.

        Events that do not apply to the current state leave it unchanged, so
        a late echo for an already confirmed entry is harmless.
        """
        new_state = cls.TRANSITIONS.get((state, event))
        if new_state is None:
            logger.debug(f"Ignoring message event {event} in state {state.value}")
            return state
        return new_state

    @classmethod
    def is_terminal(cls, state: MessageState) -> bool:
        return state in (MessageState.CONFIRMED, MessageState.REJECTED)
