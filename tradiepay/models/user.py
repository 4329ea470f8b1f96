"""User model."""
import enum

from sqlalchemy import Boolean, Enum as SqlEnum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class UserRole(str, enum.Enum):
    TRADIE = "tradie"
    HELPER = "helper"
    ADMIN = "admin"


class User(Base):
    """A marketplace member: tradies fund jobs, helpers get paid for them."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(SqlEnum(UserRole), nullable=False, default=UserRole.TRADIE)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    connect_account = relationship("ConnectAccount", back_populates="user", uselist=False)
