"""API dependencies"""

from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tablestreamer.services.ingestion_service import IngestionService


def get_service(request: Request) -> IngestionService:
    """Service owned by the app; built on first use when lifespan did not run."""
    service = getattr(request.app.state, "ingestion_service", None)
    if service is None:
        service = IngestionService()
        request.app.state.ingestion_service = service
    return service


def get_db(service: IngestionService = Depends(get_service)) -> Generator[Session, None, None]:
    """Database session bound to the service's engine"""
    with service.session_factory() as db:
        yield db
