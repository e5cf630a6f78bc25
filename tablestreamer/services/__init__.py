# Services package
from tablestreamer.services.ingestion_service import IngestionService

__all__ = [
    "IngestionService",
]
