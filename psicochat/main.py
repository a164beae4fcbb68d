import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from psicochat.config import get_settings
from psicochat.routers import chat, contacts, session, health
from psicochat.scheduler import start_scheduler, stop_scheduler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()


app = FastAPI(
    title="Psicochat API",
    description="Chat between patients and psychologists on top of the consultation API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api/v1/chat", tags=["Chat"])
app.include_router(contacts.router, prefix="/api/v1/contacts", tags=["Contacts"])
app.include_router(session.router, prefix="/api/v1/session", tags=["Session"])
app.include_router(health.router, prefix="/api/v1/health", tags=["Health"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
