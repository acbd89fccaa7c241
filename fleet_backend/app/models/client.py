"""
Client database model.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from fleet_backend.app.db.session import Base


class Client(Base):
    """Client model. A client owns zero or more trips."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=False)
    address = Column(String(500), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', email='{self.email}')>"
