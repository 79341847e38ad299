from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from app.database import engine, Base
from app.routers import chat, academic
from app.config import settings
from app.services.errors import CollaboratorUnavailableError
import logging

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Create database tables
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        # Don't fail startup; requests will report the database as unavailable
        logger.error(f"Error creating database tables: {e}")
    yield
    # Shutdown: cleanup if needed
    logger.info("Shutting down...")

app = FastAPI(
    title="UConnect Admissions Assistant",
    description=f"Admissions chatbot grounded in the academic data of the {settings.UNIVERSITY_NAME}",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
# Parse ALLOWED_ORIGINS from comma-separated string, strip whitespace
allowed_origins = [origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",") if origin.strip()]

logger.info(f"CORS allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins if allowed_origins else ["*"],  # Fallback to allow all if empty
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(CollaboratorUnavailableError)
async def collaborator_unavailable_handler(request: Request, exc: CollaboratorUnavailableError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "El servicio no está disponible en este momento. Por favor intenta de nuevo."},
    )

# Include routers
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(academic.router, prefix="/api/academic", tags=["academic"])

@app.get("/")
async def root():
    return {"message": "UConnect Admissions Assistant API", "status": "running"}

@app.get("/health")
async def health():
    return {"status": "healthy"}
