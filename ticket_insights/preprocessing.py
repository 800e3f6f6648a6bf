"""Upload parsing and row normalization for help-desk ticket files."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from io import BytesIO
from typing import Any

import numpy as np
import pandas as pd

from .constants import COLUMN_ALIASES, SUPPORTED_UPLOAD_EXTENSIONS, TEXT_FIELDS, TICKET_FIELDS
from .errors import IngestionError, UnsupportedFileError

logger = logging.getLogger(__name__)

_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def normalize_column_name(column: str) -> str:
    cleaned = re.sub(r"[^0-9a-zA-Z]+", "_", str(column).strip().lower())
    cleaned = re.sub(r"_+", "_", cleaned).strip("_")
    return cleaned


def _canonical_alias_map() -> dict[str, str]:
    mapping: dict[str, str] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            mapping.setdefault(normalize_column_name(alias), canonical)
    return mapping


def normalize_and_alias_columns(df: pd.DataFrame) -> pd.DataFrame:
    result = df.copy()
    result.columns = [normalize_column_name(col) for col in result.columns]

    alias_to_canonical = _canonical_alias_map()
    renamed: dict[str, str] = {}
    existing = set(result.columns)
    for col in result.columns:
        canonical = alias_to_canonical.get(col)
        if canonical is None or canonical == col:
            continue
        # Never shadow a column that already carries the canonical name.
        if canonical in existing or canonical in renamed.values():
            continue
        renamed[col] = canonical

    if renamed:
        result = result.rename(columns=renamed)
    return result


def _read_csv_bytes(payload: bytes) -> pd.DataFrame:
    attempts: list[str] = []
    encodings = ["utf-8", "utf-8-sig", "utf-16", "latin-1"]
    separators: list[str | None] = [None, ",", ";", "\t", "|"]

    for encoding in encodings:
        for separator in separators:
            try:
                frame = pd.read_csv(
                    BytesIO(payload),
                    sep=separator,
                    engine="python",
                    encoding=encoding,
                )
                if frame.empty and len(frame.columns) == 0:
                    continue
                return frame
            except Exception as exc:
                attempts.append(f"encoding={encoding}, sep={separator!r}: {exc}")

    sample = "; ".join(attempts[:3])
    raise IngestionError(f"Unable to parse CSV payload. Attempts failed: {sample}")


def read_upload(file_name: str, payload: bytes) -> pd.DataFrame:
    name = (file_name or "").lower()
    if not name.endswith(SUPPORTED_UPLOAD_EXTENSIONS):
        raise UnsupportedFileError("Unsupported file format")
    if not payload:
        raise IngestionError(f"'{file_name}' is empty")

    if name.endswith(".csv"):
        return _read_csv_bytes(payload)

    engine = "openpyxl" if name.endswith(".xlsx") else "xlrd"
    try:
        return pd.read_excel(BytesIO(payload), engine=engine)
    except Exception as exc:
        raise IngestionError(f"Failed to parse '{file_name}': {exc}") from exc


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def _clean_text(value: Any, default: str = "Unknown") -> str:
    if _is_missing(value):
        return default
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def parse_ticket_date(value: Any) -> datetime:
    if _is_missing(value):
        raise IngestionError("Invalid date format: missing value")

    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value

    if isinstance(value, (int, float, np.integer, np.floating)):
        # Excel stores dates as day serials from 1899-12-30.
        try:
            return pd.to_datetime(float(value), unit="D", origin="1899-12-30").to_pydatetime()
        except (ValueError, OverflowError) as exc:
            raise IngestionError(f"Invalid date format: {value}") from exc

    text = str(value).strip()
    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError as exc:
            raise IngestionError(f"Invalid date format: {text}") from exc

    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError) as exc:
        raise IngestionError(f"Invalid date format: {text}") from exc
    if pd.isna(parsed):
        raise IngestionError(f"Invalid date format: {text}")
    return parsed.to_pydatetime()


def _parse_resolution_time(value: Any, ticket_id: str) -> float:
    number = pd.to_numeric(value, errors="coerce") if not _is_missing(value) else np.nan
    if pd.isna(number) or not math.isfinite(float(number)) or float(number) < 0:
        raise IngestionError(f"Failed to process row with ticket ID {ticket_id}: invalid resolution time {value!r}")
    return float(number)


def _parse_satisfaction(value: Any, ticket_id: str) -> int:
    number = pd.to_numeric(value, errors="coerce") if not _is_missing(value) else np.nan
    if pd.isna(number) or not float(number).is_integer() or not 1 <= int(number) <= 5:
        raise IngestionError(f"Failed to process row with ticket ID {ticket_id}: invalid satisfaction rate {value!r}")
    return int(number)


def prepare_ticket_records(raw_df: pd.DataFrame) -> list[dict[str, Any]]:
    """Map an uploaded frame onto ticket rows.

    Rows without a ticket id are dropped. Any other bad value raises
    ``IngestionError`` so the caller can abort the whole upload.
    """
    df = normalize_and_alias_columns(raw_df)
    if "ticket_id" not in df.columns:
        raise IngestionError("No valid tickets found in the file")

    missing = [field for field in TICKET_FIELDS if field not in df.columns]
    if missing:
        raise IngestionError(f"Missing required column(s): {', '.join(missing)}")

    df = df[~df["ticket_id"].map(_is_missing)]
    if df.empty:
        raise IngestionError("No valid tickets found in the file")

    records: list[dict[str, Any]] = []
    for row in df[TICKET_FIELDS].to_dict("records"):
        ticket_id = _clean_text(row["ticket_id"])
        try:
            date = parse_ticket_date(row["date"])
        except IngestionError as exc:
            raise IngestionError(f"Failed to process row with ticket ID {ticket_id}: {exc}") from exc

        record = {
            "ticket_id": ticket_id,
            "date": date,
            "resolution_time": _parse_resolution_time(row["resolution_time"], ticket_id),
            "satisfaction_rate": _parse_satisfaction(row["satisfaction_rate"], ticket_id),
        }
        for field in TEXT_FIELDS:
            record[field] = _clean_text(row[field])
        records.append(record)

    logger.debug("Prepared %d ticket rows from %d uploaded rows", len(records), len(raw_df))
    return records
