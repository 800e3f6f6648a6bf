from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest

from ticket_insights.db import create_db_engine, create_session_factory, init_db
from ticket_insights.ingestion import ingest_dataset


@pytest.fixture
def reference_time() -> datetime:
    return datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def raw_ticket_df() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "ID Ticket": ["T1", "T2", "T3", "T4", "T5", "T6"],
            "Date": ["1/1/2026", "2/1/2026", "2/1/2026", "10/1/2026", "12/12/2025", "14/1/2026"],
            "Employee ID": ["E1", "E2", "E3", "E4", "E5", "E6"],
            "Agent ID": ["A1", "A2", "A1", "A3", "A2", "A3"],
            "Request Category": ["Hardware", "Software", "Software", "Network", "Software", "Hardware"],
            "Issue Type": ["Laptop", "Login", "Login", "VPN", "Login", "Laptop"],
            "Severity": ["High", "Medium", "Low", "High", "Medium", "Low"],
            "Priority": ["P1", "P2", "P3", "P1", "P2", "P4"],
            "Resolution Time (Days)": [0.5, 1.0, 2.0, 3.5, 0.25, 0.0],
            "Satisfaction Rate": [5, 4, 3, 2, 1, 5],
        }
    )


@pytest.fixture
def ticket_csv_bytes(raw_ticket_df) -> bytes:
    return raw_ticket_df.to_csv(index=False).encode("utf-8")


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def dataset(session, raw_ticket_df):
    return ingest_dataset(session, raw_ticket_df, name="January Tickets").dataset
