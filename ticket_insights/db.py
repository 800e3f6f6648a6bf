"""Engine, session and health-probe helpers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .constants import SAMPLE_TICKET_LIMIT
from .models import Base, Dataset, Ticket

logger = logging.getLogger(__name__)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        # One shared connection so every session sees the same in-memory database.
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    logger.info("Database schema ready on %s", engine.url.render_as_string(hide_password=True))


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_database(session: Session) -> dict[str, Any]:
    rows = session.execute(
        select(Dataset, func.count(Ticket.id))
        .outerjoin(Ticket, Ticket.dataset_id == Dataset.id)
        .group_by(Dataset.id)
        .order_by(Dataset.created_at.desc())
    ).all()

    datasets = [
        {
            "id": dataset.id,
            "name": dataset.name,
            "ticket_count": int(count),
            "created_at": dataset.created_at.isoformat() if dataset.created_at else None,
        }
        for dataset, count in rows
    ]

    sample_tickets: list[dict[str, Any]] = []
    for dataset, count in rows:
        if count > 0:
            tickets = session.scalars(
                select(Ticket)
                .where(Ticket.dataset_id == dataset.id)
                .order_by(Ticket.date.desc())
                .limit(SAMPLE_TICKET_LIMIT)
            ).all()
            sample_tickets = [ticket.to_dict() for ticket in tickets]
            break

    return {"datasets": datasets, "sample_tickets": sample_tickets}
