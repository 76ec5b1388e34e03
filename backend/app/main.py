"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import LOG_LEVEL
from app.api.fund import router as fund_router
from app.api.search import router as search_router
from app.api.watchlist import router as watchlist_router
from app.services.jsonp import jsonp_channel
from app.tasks.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_scheduler()
    yield
    stop_scheduler()
    await jsonp_channel.aclose()


app = FastAPI(title="Fund Valuation Feeds", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Search must be registered before /api/fund/{fund_code}
app.include_router(search_router)
app.include_router(fund_router)
app.include_router(watchlist_router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
