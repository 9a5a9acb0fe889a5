import logging

from sqlalchemy.exc import SQLAlchemyError

from enums.notice_variant import NoticeVariant
from enums.text_entity import TextEntity
from enums.user_role import UserRole
from exceptions import MarketplaceException, ValidationFailedException, RemoteReadFailedException
from models.user import UserDTO
from models.vendor import VendorDTO
from repositories.user import UserRepository
from repositories.vendor import VendorRepository
from services.notice import NoticeService, NoticeDTO
from services.session import SessionService
from utils.error_handler import to_notice
from utils.localizator import Localizator

logger = logging.getLogger(__name__)


class VendorService:

    @staticmethod
    async def setup_store(session: SessionService,
                          notices: NoticeService,
                          store_name: str,
                          address: str | None = None) -> VendorDTO | None:
        """
        Open a store for the signed-in user and make them a vendor.

        A user who already owns a store gets that store back unchanged.
        After the role change the session profile is refreshed, so
        listeners see the vendor role and the new store id.

        Returns:
            The user's store, or None if the setup failed (reported as notice)
        """
        try:
            user_id = session.require_user_id("set up store")
            store_name = (store_name or "").strip()
            if not store_name:
                raise ValidationFailedException("Store name is required")

            match await VendorRepository.get_by_owner(user_id):
                case [existing, *_]:
                    logger.info(f"User {user_id} already owns store {existing.id}")
                    return existing
                case _:
                    vendor = await VendorRepository.create(VendorDTO(
                        owner_user_id=user_id,
                        store_name=store_name,
                        address=(address or "").strip() or None
                    ))
                    await UserRepository.update(UserDTO(id=user_id, role=UserRole.VENDOR))
        except SQLAlchemyError as e:
            logger.error(f"Store setup for user {session.user_id} failed: {e}")
            notices.push(to_notice(RemoteReadFailedException("vendors", str(e))))
            return None
        except MarketplaceException as e:
            notices.push(to_notice(e))
            return None

        logger.info(f"Store {vendor.id} opened by user {user_id}")
        await session.refresh_profile()
        notices.push(NoticeDTO(
            title=Localizator.get_text(TextEntity.VENDOR, "store_created_title"),
            description=Localizator.get_text(TextEntity.VENDOR, "store_created").format(store_name=vendor.store_name),
            variant=NoticeVariant.SUCCESS
        ))
        return vendor
