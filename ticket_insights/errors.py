"""Exception types raised by the ticket insights layers."""

from __future__ import annotations


class TicketInsightsError(Exception):
    """Base class for all errors surfaced to users."""


class ValidationError(TicketInsightsError):
    """Missing or malformed input (file, dataset id, query, metric list)."""


class UnsupportedFileError(ValidationError):
    pass


class UnsupportedMetricError(ValidationError):
    def __init__(self, metric: str, valid: tuple[str, ...] | list[str]) -> None:
        self.metric = metric
        super().__init__(f"Unsupported metric: {metric}. Must be one of: {', '.join(valid)}")


class IngestionError(TicketInsightsError):
    """Upload parsing failed; nothing was persisted."""


class DatasetNotFoundError(TicketInsightsError):
    def __init__(self, dataset_id: str) -> None:
        self.dataset_id = dataset_id
        super().__init__(f"Dataset with ID {dataset_id} not found")
