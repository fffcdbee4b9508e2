import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from slotbook.core.config import settings
from slotbook.api.v1.public.router import router as public_router
from slotbook.api.v1.appointments.router import router as appointments_router
from slotbook.api.v1.session.router import router as session_router

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Slot Booking API",
        description="Slot catalog, identity check and atomic appointment commits for the booking wizard",
        version="1.0.0"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(public_router, prefix="/api/v1/public", tags=["Catalog"])
    app.include_router(appointments_router, prefix="/api/v1")
    app.include_router(session_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
