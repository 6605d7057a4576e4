"""Main FastAPI application"""
import os
import logging
import logging.config
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from routes import router as api_router
from views import StorageUnavailable, storage_unavailable_handler, router as pages_router
from storage.interface import RecordStore
from storage.json_store import JsonFileStore
from storage.mongo_store import MongoStore
from utils.query_cache import DEFAULT_STALE_TIME, QueryCache
from utils.rate_limit import limiter

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# --- Unified Logging Configuration with Rich ---
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            # RichHandler adds its own timestamp and colors
            "format": "%(name)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "default": {
            "class": "rich.logging.RichHandler",
            "formatter": "default",
            "level": "DEBUG",
            "rich_tracebacks": True,
            "show_time": True,
            "show_path": False,
            "log_time_format": "%Y-%m-%d %H:%M:%S",
            "markup": False,
        },
    },
    "loggers": {
        "uvicorn": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.error": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "": { # Root logger for our application
            "handlers": ["default"],
            "level": "INFO", # Set desired level for app logs (INFO or DEBUG)
            "propagate": False,
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

load_dotenv() # Searches current dir and parents for .env

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "json").lower()
DATA_FILE = os.getenv("DATA_FILE", os.path.join(BASE_DIR, "data", "expensewise.json"))
MONGODB_URI = os.getenv("MONGODB_URI")
DB_NAME = os.getenv("DB_NAME", "expensewise_db")
QUERY_STALE_SECONDS = float(os.getenv("QUERY_STALE_SECONDS", DEFAULT_STALE_TIME))

if STORAGE_BACKEND == "mongo" and not MONGODB_URI:
    logger.error("MONGODB_URI environment variable not set! Database connection will fail.")

# Application state holding the store and the query cache
app_state = {}

async def create_store() -> RecordStore:
    """Builds the configured storage backend. Raises on connection failure."""
    if STORAGE_BACKEND == "mongo":
        if not MONGODB_URI:
            raise ConnectionError("MONGODB_URI is not set.")
        store = MongoStore.from_uri(MONGODB_URI, DB_NAME)
        await store.ping()
        logger.info(f"Successfully connected to MongoDB database: {DB_NAME}")
        return store
    if STORAGE_BACKEND != "json":
        raise ValueError(f"Unknown STORAGE_BACKEND '{STORAGE_BACKEND}'. Use 'json' or 'mongo'.")
    logger.info(f"Using local JSON data file: {DATA_FILE}")
    return JsonFileStore(DATA_FILE)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: open the storage backend
    logger.info(f"Starting ExpenseWise with '{STORAGE_BACKEND}' storage...")
    try:
        store = await create_store()
        cache = QueryCache(stale_time=QUERY_STALE_SECONDS)
        cache.attach(store)
        app_state["store"] = store
        app_state["query_cache"] = cache
    except Exception as e:
        logger.error(f"Failed to open storage: {e}")
        app_state["store"] = None
        app_state["query_cache"] = None

    yield # Application runs here

    # Shutdown: close the storage backend
    if app_state.get("query_cache"):
        app_state["query_cache"].detach()
    if app_state.get("store"):
        await app_state["store"].close()

app = FastAPI(
    title="ExpenseWise API",
    description="Household expense tracker: expenses, vendors, categories and monthly balance.",
    version="0.1.0",
    lifespan=lifespan
)

# --- Rate Limiter State and Handler ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)

# --- Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # Adjust in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routes ---
app.include_router(api_router, prefix="/api", tags=["api"])
app.include_router(pages_router, tags=["pages"], include_in_schema=False)

app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "public")), name="static")

# Make app state accessible via middleware
@app.middleware("http")
async def add_app_config_to_request(request: Request, call_next):
    """Adds the record store and query cache to the request state."""
    request.state.store = app_state.get("store")
    request.state.query_cache = app_state.get("query_cache")
    response = await call_next(request)
    return response

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True
    )
