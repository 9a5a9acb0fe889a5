from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, String, ForeignKey, func

from models.base import Base


class Vendor(Base):
    __tablename__ = 'vendors'

    id = Column(Integer, primary_key=True)
    owner_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    store_name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now())


class VendorDTO(BaseModel):
    id: int | None = None
    owner_user_id: int | None = None
    store_name: str | None = None
    address: str | None = None
    created_at: datetime | None = None
