from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from finance_api.core.config import settings
from finance_api.core.logging_config import setup_logging
from finance_api.db.session import engine
from finance_api.db.base import Base

# register tables on Base.metadata
from finance_api.models import account, category, document, exchange_rate, fixed_cost, ocr_usage, repasse, transaction  # noqa: F401

from finance_api.api.documents import router as documents_router
from finance_api.api.exchange import router as exchange_router
from finance_api.api.repasses import router as repasses_router
from finance_api.api.reference_data import router as reference_data_router

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_BASE_URL, "http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DEV ONLY
Base.metadata.create_all(bind=engine)

# ROUTERS
app.include_router(documents_router, prefix="/api/documents", tags=["documents"])
app.include_router(exchange_router, prefix="/api/exchange", tags=["exchange"])
app.include_router(repasses_router, prefix="/api/repasses", tags=["repasses"])
app.include_router(reference_data_router, prefix="/api", tags=["reference-data"])


@app.get("/api/health")
def health():
    return {"status": "ok"}
