from __future__ import annotations

from io import BytesIO

import pandas as pd
import pytest
from sqlalchemy import func, select

from ticket_insights.errors import DatasetNotFoundError, IngestionError, UnsupportedFileError, ValidationError
from ticket_insights.ingestion import ingest_dataset, ingest_upload
from ticket_insights.models import Dataset, Ticket


def _dataset_count(session) -> int:
    return session.scalar(select(func.count(Dataset.id)))


def _ticket_count(session, dataset_id: str) -> int:
    return session.scalar(select(func.count(Ticket.id)).where(Ticket.dataset_id == dataset_id))


def test_ingest_upload_creates_dataset_and_tickets(session, ticket_csv_bytes) -> None:
    result = ingest_upload(session, "january.csv", ticket_csv_bytes, name="January")

    assert result.dataset.name == "January"
    assert result.dataset.description == "Uploaded file: january.csv"
    assert result.rows_parsed == 6
    assert result.tickets_inserted == 6
    assert result.duplicates_skipped == 0
    assert _ticket_count(session, result.dataset.id) == 6

    payload = result.to_dict()
    assert payload["success"] is True
    assert payload["ticket_count"] == 6
    assert payload["dataset"]["id"] == result.dataset.id


def test_ingest_upload_defaults_name_to_file_name(session, ticket_csv_bytes) -> None:
    result = ingest_upload(session, "tickets_q1.csv", ticket_csv_bytes)
    assert result.dataset.name == "tickets_q1.csv"


def test_ingest_upload_reads_excel(session, raw_ticket_df) -> None:
    stream = BytesIO()
    with pd.ExcelWriter(stream, engine="openpyxl") as writer:
        raw_ticket_df.to_excel(writer, index=False)

    result = ingest_upload(session, "tickets.xlsx", stream.getvalue(), name="Excel")

    assert result.tickets_inserted == 6


def test_reupload_into_same_dataset_skips_duplicates(session, raw_ticket_df) -> None:
    first = ingest_dataset(session, raw_ticket_df, name="Tickets")
    second = ingest_dataset(session, raw_ticket_df, name="ignored", dataset_id=first.dataset.id)

    assert second.dataset.id == first.dataset.id
    assert second.tickets_inserted == 0
    assert second.duplicates_skipped == 6
    assert second.ticket_count == 6
    assert _ticket_count(session, first.dataset.id) == 6
    assert _dataset_count(session) == 1


def test_duplicate_ticket_ids_within_one_file_are_stored_once(session, raw_ticket_df) -> None:
    doubled = pd.concat([raw_ticket_df, raw_ticket_df.head(2)], ignore_index=True)
    result = ingest_dataset(session, doubled, name="Doubled")

    assert result.rows_parsed == 8
    assert result.tickets_inserted == 6
    assert result.duplicates_skipped == 2


def test_same_ticket_id_allowed_in_different_datasets(session, raw_ticket_df) -> None:
    first = ingest_dataset(session, raw_ticket_df, name="One")
    second = ingest_dataset(session, raw_ticket_df, name="Two")

    assert first.dataset.id != second.dataset.id
    assert second.tickets_inserted == 6


def test_bad_date_leaves_no_dataset_row(session, raw_ticket_df) -> None:
    raw_ticket_df.loc[3, "Date"] = "31/2/2026"

    with pytest.raises(IngestionError, match="ticket ID T4"):
        ingest_dataset(session, raw_ticket_df, name="Broken")

    assert _dataset_count(session) == 0
    assert session.scalar(select(func.count(Ticket.id))) == 0


def test_database_failure_rolls_back_dataset(session, raw_ticket_df, monkeypatch) -> None:
    import ticket_insights.ingestion as ingestion_module

    def _explode(session, rows):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(ingestion_module, "_insert_ignoring_duplicates", _explode)

    with pytest.raises(RuntimeError):
        ingest_dataset(session, raw_ticket_df, name="Rolled back")

    assert _dataset_count(session) == 0


def test_ingest_validation_errors(session, raw_ticket_df) -> None:
    with pytest.raises(UnsupportedFileError):
        ingest_upload(session, "tickets.pdf", b"%PDF")
    with pytest.raises(ValidationError):
        ingest_dataset(session, raw_ticket_df, name="  ")
    with pytest.raises(DatasetNotFoundError):
        ingest_dataset(session, raw_ticket_df, name="x", dataset_id="missing")

    assert _dataset_count(session) == 0
