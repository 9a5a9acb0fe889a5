from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, String, func
from sqlalchemy import Enum as SQLEnum

from enums.user_role import UserRole
from models.base import Base


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    # Identity issued by the auth provider, opaque to this service
    auth_user_id = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.CUSTOMER)
    barangay = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    # Telegram chat used as a push endpoint when the user links one
    telegram_id = Column(Integer, nullable=True, unique=True)
    created_at = Column(DateTime, default=func.now())


class UserDTO(BaseModel):
    id: int | None = None
    auth_user_id: str | None = None
    full_name: str | None = None
    email: str | None = None
    role: UserRole | None = None
    barangay: str | None = None
    phone: str | None = None
    telegram_id: int | None = None
    created_at: datetime | None = None
