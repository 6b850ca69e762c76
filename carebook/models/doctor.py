"""Doctor model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from carebook.database import Base
from carebook.models.category import Category
from carebook.models.user import User, generate_id


class Doctor(Base):
    """Doctor profile attached to a user account with the doctor role."""
    __tablename__ = "doctors"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    specialization = Column(String, nullable=False)
    experience = Column(Integer, nullable=False, default=0)
    bio = Column(Text)
    avatar = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship(User)
    category = relationship(Category)

    @property
    def first_name(self) -> str | None:
        return self.user.first_name if self.user else None

    @property
    def last_name(self) -> str | None:
        return self.user.last_name if self.user else None

    @property
    def email(self) -> str | None:
        return self.user.email if self.user else None

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category else None
