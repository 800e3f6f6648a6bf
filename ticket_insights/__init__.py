"""Help-desk ticket insights: dataset ingestion, analytics and chat."""

from .analytics import get_dataset_list, get_dataset_summary, get_ticket_analytics
from .api_server import create_app
from .chat import ChatService, ChatSession
from .ingestion import ingest_dataset, ingest_upload
from .intents import detect_intent

__all__ = [
    "ChatService",
    "ChatSession",
    "create_app",
    "detect_intent",
    "get_dataset_list",
    "get_dataset_summary",
    "get_ticket_analytics",
    "ingest_dataset",
    "ingest_upload",
]
