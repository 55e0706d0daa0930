"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from querygate.api.routers import ask, usage

app = FastAPI(
    title="Query Gate",
    version="0.1.0",
    description="Cached, quota-gated natural-language queries for the BI dashboard",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/ask", tags=["Query"])
app.include_router(usage.router, tags=["Usage"])


@app.get("/health")
def health():
    return {"status": "ok"}
