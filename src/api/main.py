"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.gateway_profile import validate_gateway_profile_guardrails
from src.api.observability import setup_observability
from src.api.routers.proposals import close_proposal_service
from src.api.routers.proposals import router as confidential_proposal_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_gateway_profile_guardrails()
    yield
    await close_proposal_service()


app = FastAPI(
    title="Confidential Investment Proposal API",
    version="0.1.0",
    description=(
        "Session API for an investment collective whose proposal amounts are kept confidential "
        "with fully-homomorphic encryption.\n\n"
        "Amounts are encrypted before submission and only become readable after a decryption "
        "proof has been accepted by the ledger."
    ),
    openapi_tags=[
        {
            "name": "Confidential Proposals",
            "description": "Session, proposal lifecycle, statistics, and notification endpoints.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
logger = logging.getLogger(__name__)

app.include_router(confidential_proposal_router)


@app.get("/health", tags=["Confidential Proposals"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )
