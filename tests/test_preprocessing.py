from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest

from ticket_insights.errors import IngestionError, UnsupportedFileError
from ticket_insights.preprocessing import (
    normalize_and_alias_columns,
    parse_ticket_date,
    prepare_ticket_records,
    read_upload,
)


def test_normalize_and_alias_columns_maps_upload_headers(raw_ticket_df) -> None:
    output = normalize_and_alias_columns(raw_ticket_df)

    assert list(output.columns) == [
        "ticket_id",
        "date",
        "employee_id",
        "agent_id",
        "request_category",
        "issue_type",
        "severity",
        "priority",
        "resolution_time",
        "satisfaction_rate",
    ]


def test_alias_never_shadows_existing_canonical_column() -> None:
    raw = pd.DataFrame({"Ticket ID": ["X1"], "ID": [99]})
    output = normalize_and_alias_columns(raw)

    assert "ticket_id" in output.columns
    assert "id" in output.columns
    assert output["ticket_id"].tolist() == ["X1"]


def test_parse_ticket_date_variants() -> None:
    assert parse_ticket_date("14/1/2026") == datetime(2026, 1, 14)
    assert parse_ticket_date("2026-03-05") == datetime(2026, 3, 5)
    assert parse_ticket_date(pd.Timestamp("2026-02-01 10:30")) == datetime(2026, 2, 1, 10, 30)
    assert parse_ticket_date(45292) == datetime(2024, 1, 1)

    with pytest.raises(IngestionError):
        parse_ticket_date("31/2/2026")
    with pytest.raises(IngestionError):
        parse_ticket_date("not a date")
    with pytest.raises(IngestionError):
        parse_ticket_date(None)


def test_prepare_ticket_records_types(raw_ticket_df) -> None:
    records = prepare_ticket_records(raw_ticket_df)

    assert len(records) == 6
    first = records[0]
    assert first["ticket_id"] == "T1"
    assert first["date"] == datetime(2026, 1, 1)
    assert first["resolution_time"] == 0.5
    assert first["satisfaction_rate"] == 5
    assert first["agent_id"] == "A1"


def test_prepare_ticket_records_drops_rows_without_ticket_id(raw_ticket_df) -> None:
    raw_ticket_df.loc[2, "ID Ticket"] = None
    records = prepare_ticket_records(raw_ticket_df)

    assert [record["ticket_id"] for record in records] == ["T1", "T2", "T4", "T5", "T6"]


def test_prepare_ticket_records_numeric_ids_become_plain_strings(raw_ticket_df) -> None:
    raw_ticket_df["Agent ID"] = [101.0, 102.0, 101.0, 103.0, 102.0, 103.0]
    records = prepare_ticket_records(raw_ticket_df)

    assert records[0]["agent_id"] == "101"


def test_prepare_ticket_records_rejects_bad_values(raw_ticket_df) -> None:
    bad_rating = raw_ticket_df.copy()
    bad_rating.loc[1, "Satisfaction Rate"] = 7
    with pytest.raises(IngestionError, match="ticket ID T2"):
        prepare_ticket_records(bad_rating)

    bad_time = raw_ticket_df.copy()
    bad_time.loc[0, "Resolution Time (Days)"] = -1
    with pytest.raises(IngestionError, match="resolution time"):
        prepare_ticket_records(bad_time)


def test_prepare_ticket_records_requires_columns(raw_ticket_df) -> None:
    with pytest.raises(IngestionError, match="Missing required column"):
        prepare_ticket_records(raw_ticket_df.drop(columns=["Priority"]))

    with pytest.raises(IngestionError, match="No valid tickets"):
        prepare_ticket_records(raw_ticket_df.drop(columns=["ID Ticket"]))


def test_read_upload_handles_csv_variants(raw_ticket_df) -> None:
    semicolon = raw_ticket_df.to_csv(index=False, sep=";").encode("utf-8")
    frame = read_upload("tickets.csv", semicolon)

    assert len(frame) == 6
    assert "ID Ticket" in frame.columns


def test_read_upload_rejects_unsupported_and_empty_files() -> None:
    with pytest.raises(UnsupportedFileError):
        read_upload("tickets.txt", b"a,b\n1,2\n")
    with pytest.raises(IngestionError):
        read_upload("tickets.csv", b"")
