"""FastAPI application for the lead enrichment service.

Run:
    uv run uvicorn api.leads.app:app --reload --port 8000
"""

import logging
from contextlib import asynccontextmanager

logging.basicConfig(level=logging.INFO)

from fastapi import FastAPI

from api.leads.routes import close_service, router as leads_router
from db.client import close_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_service()
    await close_db()


app = FastAPI(title="Lead Enrichment Service", lifespan=lifespan)

# POST /api/leads/enrich, GET /health
app.include_router(leads_router)
