import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.routes.auth import router as auth_router
from app.api.routes.bankda import router as bankda_router
from app.api.routes.audit import router as audit_router
from app.services.bankda_sync import bankda_sync_loop

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="bankda-reconcile")

origins = [o.strip() for o in (settings.cors_origins or "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
@app.get("/api/health")
def health():
    return {"status": "ok"}

app.include_router(auth_router)
app.include_router(bankda_router)
app.include_router(audit_router)

@app.on_event("startup")
async def _start_bankda_sync():
    if settings.bankda_sync_enabled:
        asyncio.create_task(bankda_sync_loop())
