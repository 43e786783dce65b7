# src/spotmap/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and mounts the spot router.
Business logic lives in `spotmap.services.spots`.
"""

from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from spotmap.core.logging import configure_logging

from .routes import router

configure_logging()

app = FastAPI(title="Spotmap API", version="0.1.0")

# Configure via env:
# - SPOTMAP_CORS_ORIGINS="http://localhost:5173,http://127.0.0.1:5173"
cors_origins = [s.strip() for s in os.getenv("SPOTMAP_CORS_ORIGINS", "").split(",") if s.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(router)


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}
