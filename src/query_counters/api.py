"""FastAPI endpoints exposing query counters to dashboards."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, FastAPI
from pydantic import BaseModel, Field

from .config import get_settings
from .counters import PerformanceCounters
from .logging_utils import configure_logging, log_event


class QueryMetricsResponse(BaseModel):
    queries: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description="Metrics keyed by canonical query text."
    )
    runningQueries: int = Field(..., ge=0, description="Approximate number of in-flight queries.")
    latencyMilliseconds: int | None = Field(
        default=None, description="Calibrated round-trip latency deducted from every duration."
    )


class RunningQueriesResponse(BaseModel):
    runningQueries: int = Field(..., ge=0)


def create_metrics_router(counters: PerformanceCounters, prefix: str | None = None) -> APIRouter:
    """Build the metrics router bound to one explicitly constructed counters instance."""

    router = APIRouter(prefix=prefix if prefix is not None else get_settings().metrics_prefix, tags=["metrics"])

    @router.get("/queries", response_model=QueryMetricsResponse)
    def query_metrics() -> QueryMetricsResponse:
        return QueryMetricsResponse(
            queries=counters.metrics_as_object(),
            runningQueries=counters.running_queries_count,
            latencyMilliseconds=counters.latency_milliseconds,
        )

    @router.get("/queries/running", response_model=RunningQueriesResponse)
    def running_queries() -> RunningQueriesResponse:
        return RunningQueriesResponse(runningQueries=counters.running_queries_count)

    @router.delete("/queries")
    def clear_query_metrics() -> Dict[str, Any]:
        counters.clear()
        log_event("metrics_cleared", {"runningQueries": counters.running_queries_count})
        return {"status": "cleared"}

    return router


def create_app(counters: PerformanceCounters | None = None) -> FastAPI:
    configure_logging()

    counters = counters if counters is not None else PerformanceCounters()
    app = FastAPI(title="Query Counters", version="0.1.0")
    app.state.counters = counters

    @app.get("/healthz", tags=["system"])
    def healthcheck() -> Dict[str, Any]:
        return {"status": "ok"}

    app.include_router(create_metrics_router(counters))

    return app


__all__ = ["QueryMetricsResponse", "RunningQueriesResponse", "create_app", "create_metrics_router"]
