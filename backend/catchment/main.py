from __future__ import annotations

import logging
import os
import random

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .catchment_service import calculate_catchments
from .config import CatchmentConfig
from .fallback import estimate_default_demographics
from .schemas import (
    CatchmentRecord,
    CatchmentRequest,
    CatchmentResponse,
    ErrorResponse,
    EstimateRequest,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

config = CatchmentConfig.from_env()
app = FastAPI(title="Catchment Demographics API", version="0.1.0")

raw_origins = os.getenv("CORS_ORIGINS", "*")
allow_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
if not allow_origins:
    allow_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post(
    "/calculate-catchment",
    response_model=CatchmentResponse,
    responses={502: {"model": ErrorResponse}},
)
async def calculate_catchment(payload: CatchmentRequest) -> CatchmentResponse:
    """Demographics for each requested drive-time break around a location.

    Breaks are computed independently; a break whose routing fails carries an
    ``error`` instead of demographics. Only when every break fails is the
    request answered with 502.
    """
    response = await calculate_catchments(payload, config)
    errors = [result.error for result in response.catchment_results if result.error]
    if errors and len(errors) == len(response.catchment_results):
        raise HTTPException(status_code=502, detail=errors[0])
    return response


@app.post("/api/catchment/estimate", response_model=list[CatchmentRecord])
def estimate_catchment(payload: EstimateRequest) -> list[CatchmentRecord]:
    """Data-free placeholder demographics, one record per break."""
    rng = random.Random()
    return [estimate_default_demographics(minutes, rng, config) for minutes in payload.drive_times]
