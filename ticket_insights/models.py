"""ORM models for uploaded datasets and their tickets."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Dataset(Base):
    """An uploaded ticket file. Record count is always derived from its tickets."""

    __tablename__ = "datasets"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    tickets = relationship("Ticket", back_populates="dataset", passive_deletes="all")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("ticket_id", "dataset_id", name="tickets_ticket_id_dataset_id_key"),
        Index("tickets_dataset_id_idx", "dataset_id"),
        CheckConstraint("satisfaction_rate BETWEEN 1 AND 5", name="tickets_satisfaction_rate_check"),
        CheckConstraint("resolution_time >= 0", name="tickets_resolution_time_check"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    ticket_id = Column(Text, nullable=False)
    date = Column(DateTime, nullable=False)
    employee_id = Column(Text, nullable=False)
    agent_id = Column(Text, nullable=False)
    request_category = Column(Text, nullable=False)
    issue_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    priority = Column(Text, nullable=False)
    resolution_time = Column(Float, nullable=False)
    satisfaction_rate = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)
    dataset_id = Column(
        String(36),
        ForeignKey("datasets.id", ondelete="RESTRICT", onupdate="CASCADE"),
        nullable=False,
    )

    dataset = relationship("Dataset", back_populates="tickets")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "date": self.date.isoformat() if self.date else None,
            "employee_id": self.employee_id,
            "agent_id": self.agent_id,
            "request_category": self.request_category,
            "issue_type": self.issue_type,
            "severity": self.severity,
            "priority": self.priority,
            "resolution_time": self.resolution_time,
            "satisfaction_rate": self.satisfaction_rate,
            "dataset_id": self.dataset_id,
        }
