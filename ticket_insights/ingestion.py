"""Dataset ingestion: one upload becomes one dataset plus its tickets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .errors import DatasetNotFoundError, IngestionError, ValidationError
from .models import Dataset, Ticket, _new_id
from .preprocessing import prepare_ticket_records, read_upload

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    dataset: Dataset
    rows_parsed: int
    tickets_inserted: int
    duplicates_skipped: int
    ticket_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "dataset": self.dataset.to_dict(),
            "rows_parsed": self.rows_parsed,
            "tickets_inserted": self.tickets_inserted,
            "duplicates_skipped": self.duplicates_skipped,
            "ticket_count": self.ticket_count,
        }


def _insert_ignoring_duplicates(session: Session, rows: list[dict[str, Any]]) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        statement = postgresql.insert(Ticket).on_conflict_do_nothing(index_elements=["ticket_id", "dataset_id"])
    elif dialect == "sqlite":
        statement = sqlite.insert(Ticket).on_conflict_do_nothing(index_elements=["ticket_id", "dataset_id"])
    else:
        raise IngestionError(f"Bulk insert is not supported on the '{dialect}' backend")

    session.execute(statement, rows)


def _count_tickets(session: Session, dataset_id: str) -> int:
    return int(session.scalar(select(func.count(Ticket.id)).where(Ticket.dataset_id == dataset_id)) or 0)


def ingest_dataset(
    session: Session,
    raw_df: pd.DataFrame,
    name: str,
    description: str | None = None,
    dataset_id: str | None = None,
) -> IngestionResult:
    """Persist an uploaded frame as tickets of a new (or existing) dataset.

    Dataset creation and the bulk insert share one transaction, so a parse
    or database failure leaves neither a dataset row nor partial tickets.
    Re-sending a ticket id already stored in the target dataset is skipped.
    """
    records = prepare_ticket_records(raw_df)

    try:
        if dataset_id is not None:
            dataset = session.get(Dataset, dataset_id)
            if dataset is None:
                raise DatasetNotFoundError(dataset_id)
            dataset.updated_at = datetime.now()
        else:
            if not name or not name.strip():
                raise ValidationError("Dataset name is required")
            dataset = Dataset(name=name.strip(), description=description)
            session.add(dataset)
        session.flush()

        now = datetime.now()
        rows = [
            {
                **record,
                "id": _new_id(),
                "dataset_id": dataset.id,
                "created_at": now,
                "updated_at": now,
            }
            for record in records
        ]
        before = _count_tickets(session, dataset.id)
        _insert_ignoring_duplicates(session, rows)
        ticket_count = _count_tickets(session, dataset.id)
        session.commit()
    except Exception:
        session.rollback()
        raise

    inserted = ticket_count - before
    result = IngestionResult(
        dataset=dataset,
        rows_parsed=len(records),
        tickets_inserted=inserted,
        duplicates_skipped=len(records) - inserted,
        ticket_count=ticket_count,
    )
    logger.info(
        "Ingested dataset %s (%s): %d rows parsed, %d inserted, %d duplicates skipped",
        dataset.id,
        dataset.name,
        result.rows_parsed,
        result.tickets_inserted,
        result.duplicates_skipped,
    )
    return result


def ingest_upload(
    session: Session,
    file_name: str,
    payload: bytes,
    name: str | None = None,
    dataset_id: str | None = None,
) -> IngestionResult:
    raw_df = read_upload(file_name, payload)
    if raw_df.empty:
        raise IngestionError("No valid tickets found in the file")
    return ingest_dataset(
        session,
        raw_df,
        name=name or file_name,
        description=f"Uploaded file: {file_name}",
        dataset_id=dataset_id,
    )
