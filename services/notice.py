import logging
from typing import Callable

from pydantic import BaseModel

from enums.notice_variant import NoticeVariant

logger = logging.getLogger(__name__)


class NoticeDTO(BaseModel):
    """A user-facing toast. code carries the error kind for failures."""
    title: str
    description: str | None = None
    variant: NoticeVariant = NoticeVariant.DEFAULT
    code: str | None = None


class NoticeService:
    """
    In-process toaster.

    Services push notices here instead of raising to the presentation layer;
    front ends either drain() the queue or subscribe() for live delivery.
    """

    def __init__(self):
        self._notices: list[NoticeDTO] = []
        self._listeners: list[Callable[[NoticeDTO], None]] = []

    def push(self, notice: NoticeDTO) -> NoticeDTO:
        self._notices.append(notice)
        logger.debug(f"Notice queued: {notice.title} ({notice.variant.value})")
        for listener in list(self._listeners):
            listener(notice)
        return notice

    def subscribe(self, listener: Callable[[NoticeDTO], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def notices(self) -> list[NoticeDTO]:
        return list(self._notices)

    def drain(self) -> list[NoticeDTO]:
        notices, self._notices = self._notices, []
        return notices
