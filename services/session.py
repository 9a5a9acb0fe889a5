import logging
from typing import Callable

from exceptions import AuthRequiredException, RemoteReadFailedException
from models.user import UserDTO
from repositories.user import UserRepository
from repositories.vendor import VendorRepository

logger = logging.getLogger(__name__)


class SessionService:
    """
    Explicit session/profile object handed to every stateful service.

    The auth provider issues the identity (auth_user_id); this service only
    resolves it to a profile row and tells listeners when it changes.
    """

    def __init__(self):
        self.auth_user_id: str | None = None
        self.profile: UserDTO | None = None
        self.vendor_ids: list[int] = []
        self._listeners: list[Callable[[UserDTO | None], None]] = []

    @property
    def user_id(self) -> int | None:
        return self.profile.id if self.profile else None

    @property
    def is_authenticated(self) -> bool:
        return self.profile is not None

    def require_user_id(self, operation: str) -> int:
        if self.profile is None or self.profile.id is None:
            raise AuthRequiredException(operation)
        return self.profile.id

    async def sign_in(self, auth_user_id: str) -> UserDTO:
        """
        Resolve auth_user_id to its profile and notify listeners.

        Raises:
            RemoteReadFailedException: no profile exists for the identity
        """
        profile = await UserRepository.get_by_auth_user_id(auth_user_id)
        if profile is None:
            raise RemoteReadFailedException("profile", f"no profile for {auth_user_id}")
        self.auth_user_id = auth_user_id
        self.profile = profile
        self.vendor_ids = [vendor.id for vendor in await VendorRepository.get_by_owner(profile.id)]
        logger.info(f"Session started for user {profile.id}")
        self._notify()
        return profile

    async def refresh_profile(self) -> UserDTO | None:
        if self.auth_user_id is None:
            return None
        profile = await UserRepository.get_by_auth_user_id(self.auth_user_id)
        self.profile = profile
        self.vendor_ids = [vendor.id for vendor in await VendorRepository.get_by_owner(profile.id)] if profile else []
        self._notify()
        return profile

    def sign_out(self) -> None:
        if self.profile is not None:
            logger.info(f"Session ended for user {self.profile.id}")
        self.auth_user_id = None
        self.profile = None
        self.vendor_ids = []
        self._notify()

    def subscribe(self, listener: Callable[[UserDTO | None], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.profile)
