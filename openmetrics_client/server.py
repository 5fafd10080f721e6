"""HTTP exposition and control API using FastAPI."""
from typing import Dict
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field
import logging
import time

from openmetrics_client.errors import MetricError
from openmetrics_client.exposition import CONTENT_TYPE

logger = logging.getLogger(__name__)


class ResetRequest(BaseModel):
    """Request to reset one series of a metric."""
    metric: str
    labels: Dict[str, str] = Field(default_factory=dict)


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ControlAPI:
    """FastAPI app exposing /metrics plus runtime controls."""

    def __init__(self, engine):
        """
        Initialize control API.

        Args:
            engine: Reference to the metrics engine
        """
        self.engine = engine
        self.app = FastAPI(title="OpenMetrics Client Control API")

        # Setup routes
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/metrics")
        async def metrics():
            """OpenMetrics exposition of every registered metric."""
            return Response(content=self.engine.registry.render(), media_type=CONTENT_TYPE)

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Get current engine status."""
            return {
                "uptime_seconds": time.time() - self.engine.start_time,
                "tick_count": self.engine.tick_count,
                "running": self.engine.running,
                "metrics": [m.name for m in self.engine.registry.get_metrics()],
                "driven_metrics": list(self.engine.drivers.keys()),
            }

        @self.app.post("/control/reset")
        async def reset_series(request: ResetRequest):
            """Reset one series of a metric."""
            metric = self.engine.get_metric(request.metric)
            if metric is None:
                available = [m.name for m in self.engine.registry.get_metrics()]
                raise HTTPException(
                    status_code=404,
                    detail=f"Metric '{request.metric}' not found. Available metrics: {available}"
                )

            if not hasattr(metric, "reset"):
                raise HTTPException(
                    status_code=400,
                    detail=f"Metric '{metric.name}' ({metric.kind}) does not support reset"
                )

            try:
                metric.reset(request.labels)
            except MetricError as e:
                raise HTTPException(status_code=400, detail=str(e))

            logger.info(f"Reset series of {metric.name}: labels={request.labels}")
            return {
                "status": "series_reset",
                "metric": metric.name,
                "labels": request.labels,
                "timestamp": time.time()
            }

        @self.app.post("/control/loglevel")
        async def set_log_level(request: LogLevelRequest):
            """Change log level at runtime."""
            level = request.level.upper()

            if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid log level: {level}"
                )

            logging.getLogger().setLevel(getattr(logging, level))
            logger.info(f"Log level changed to: {level}")

            return {
                "status": "log_level_changed",
                "level": level,
                "timestamp": time.time()
            }

    def run(self, host: str = "0.0.0.0", port: int = 8000):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
