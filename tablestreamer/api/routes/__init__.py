from tablestreamer.api.routes.health import router as health_router
from tablestreamer.api.routes.ingestion import router as ingestion_router

__all__ = ["health_router", "ingestion_router"]
