"""Category model definitions."""

from sqlalchemy import Column, DateTime, String, Text, func
from carebook.database import Base
from carebook.models.user import generate_id


class Category(Base):
    """A medical speciality doctors are grouped under."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
