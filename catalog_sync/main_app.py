#=================================================================
# catalog_sync/main_app.py
# FastAPI application entry-point.
#=================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from catalog_sync.routes import router as api_router
from catalog_sync.db import dispose, init_db
from catalog_sync.config import settings
from catalog_sync.logging_filters import install_html_trim_filter

# --- FastAPI instance ---
app = FastAPI(
    title="Catalog Sync",
    description="One-way product catalog sync to a WooCommerce store.",
)

# --- Logging setup (console, INFO level) ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
install_html_trim_filter()

# --- CORS ---
origins = settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Public API
app.include_router(api_router)           # /api/*


# --- Root endpoint ---
@app.get("/")
async def home():
    return {"status": "running", "service": "Catalog Sync"}


# --- Global error handler (keeps full stack trace in logs) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "data": f"Sync failed: {str(exc)}"},
    )


@app.on_event("startup")
async def _startup():
    # sync_claims table
    await init_db()
    logger.info("[APP] target store: %s", settings.TARGET_URL or "<not configured>")


@app.on_event("shutdown")
async def _shutdown():
    await dispose()
