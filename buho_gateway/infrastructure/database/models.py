"""SQLAlchemy ORM models for linked institutions"""

import uuid
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class BankLinkRecord(Base):
    """Durable provider credential for one linked institution"""

    __tablename__ = "bank_link"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Text, nullable=False, index=True)
    item_id = Column(Text, nullable=False, unique=True)
    access_token = Column(Text, nullable=False)
    institution_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
