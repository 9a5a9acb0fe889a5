from sqlalchemy import select

from db import get_db_session, session_commit, session_execute, session_refresh
from models.vendor import Vendor, VendorDTO


class VendorRepository:
    @staticmethod
    async def get_by_id(vendor_id: int) -> VendorDTO | None:
        stmt = select(Vendor).where(Vendor.id == vendor_id)
        async with get_db_session() as session:
            vendor = await session_execute(stmt, session)
            vendor = vendor.scalar()
            if vendor is not None:
                return VendorDTO.model_validate(vendor, from_attributes=True)
            else:
                return None

    @staticmethod
    async def get_by_ids(vendor_ids: list[int]) -> list[VendorDTO]:
        if not vendor_ids:
            return []
        stmt = select(Vendor).where(Vendor.id.in_(vendor_ids))
        async with get_db_session() as session:
            vendors = await session_execute(stmt, session)
            return [VendorDTO.model_validate(vendor, from_attributes=True) for vendor in vendors.scalars().all()]

    @staticmethod
    async def get_by_owner(owner_user_id: int) -> list[VendorDTO]:
        stmt = select(Vendor).where(Vendor.owner_user_id == owner_user_id).order_by(Vendor.id)
        async with get_db_session() as session:
            vendors = await session_execute(stmt, session)
            return [VendorDTO.model_validate(vendor, from_attributes=True) for vendor in vendors.scalars().all()]

    @staticmethod
    async def create(vendor_dto: VendorDTO) -> VendorDTO:
        async with get_db_session() as session:
            vendor = Vendor(**vendor_dto.model_dump(exclude_none=True))
            session.add(vendor)
            await session_commit(session)
            await session_refresh(session, vendor)
            return VendorDTO.model_validate(vendor, from_attributes=True)
