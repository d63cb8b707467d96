import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ErrorKind, FleetLinkError, log_exception
from app.core.logging_config import setup_logging
from app.database import engine, Base
from app.routes import booking, vehicle

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("api")

if settings.AUTO_CREATE_DB:
    Base.metadata.create_all(bind=engine)

# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Vehicle booking backend with availability search and double-booking protection",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FleetLinkError)
def fleetlink_error_handler(request: Request, exc: FleetLinkError):
    if exc.kind == ErrorKind.INTERNAL:
        log_exception(logger, "Request failed", extra={"method": request.method, "path": request.url.path}, exc=exc)
        message = "Something went wrong on the server" if settings.is_prod else exc.message
    else:
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind.value, "message": message},
    )


# Include routers
app.include_router(vehicle.router)
app.include_router(booking.router)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Welcome to FleetLink API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}
