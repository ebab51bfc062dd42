from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Integer, Text, Index, Uuid
from sqlalchemy.orm import relationship
from .database import Base
import uuid
from datetime import datetime


class Account(Base):
    """A reporter or an administrator; the role column tells them apart."""
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, default="user", nullable=False)  # 'user' | 'admin'
    points = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    reports = relationship("Report", back_populates="owner")


class Report(Base):
    __tablename__ = "reports"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # Location: coordinates and/or free-text address
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=True)

    breeding_type = Column(String, nullable=False)  # Standing Water, Trash, Drain
    severity = Column(String, nullable=False)  # Low, Medium, High
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=False)

    status = Column(String, default="PENDING", nullable=False)
    points_awarded = Column(Integer, default=0, nullable=False)

    # Classification recorded at creation (AI-gated deployments)
    ai_verdict = Column(String, nullable=True)
    ai_confidence = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner = relationship("Account", back_populates="reports")

    __table_args__ = (
        Index('idx_reports_location_type_created', 'latitude', 'longitude', 'breeding_type', 'created_at'),
    )
