"""
Status HTTP server for QuietWatch.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from aiohttp import web
from aiohttp.web import Request, Response

StatusProvider = Callable[[], Dict[str, Any]]


class StatusServer:
    """Serves health, pending-timer status and plain-text metrics."""

    def __init__(self, status_provider: StatusProvider, host: str = "127.0.0.1", port: int = 8110):
        """
        Initialize status server.

        Args:
            status_provider: Returns the application status dictionary
            host: Server host
            port: Server port
        """
        self.status_provider = status_provider
        self.host = host
        self.port = port
        self.logger = logging.getLogger(__name__)
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Create the web application."""
        app = web.Application()
        app.router.add_get('/health', self.health_handler)
        app.router.add_get('/status', self.status_handler)
        app.router.add_get('/metrics', self.metrics_handler)
        return app

    async def health_handler(self, request: Request) -> Response:
        """Handle /health endpoint."""
        status = self.status_provider()
        healthy = status.get('running', False)
        return web.json_response({
            "status": "healthy" if healthy else "starting",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": status.get('uptime_seconds', 0),
        }, status=200 if healthy else 503)

    async def status_handler(self, request: Request) -> Response:
        """Handle /status endpoint."""
        try:
            return web.json_response(self.status_provider(), dumps=_dumps)
        except Exception as e:
            self.logger.error(f"Status check failed: {e}")
            return web.json_response({"status": "error", "message": str(e)}, status=500)

    async def metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint (Prometheus text format)."""
        status = self.status_provider()
        metrics = [
            f"quietwatch_up {1 if status.get('running') else 0}",
            f"quietwatch_uptime_seconds {status.get('uptime_seconds', 0)}",
            f"quietwatch_pending_timers {len(status.get('pending', []))}",
        ]
        for key, value in status.get('processing_stats', {}).items():
            if isinstance(value, (int, float)):
                metrics.append(f'quietwatch_bulletins{{stat="{key}"}} {value}')
        for key, value in status.get('reconciler', {}).items():
            if isinstance(value, (int, float)):
                metrics.append(f'quietwatch_reconciler{{stat="{key}"}} {value}')

        return web.Response(text="\n".join(metrics) + "\n", content_type="text/plain")

    async def start(self) -> None:
        """Start the status server."""
        self.runner = web.AppRunner(self.create_app())
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        self.logger.info(f"Status server started on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the status server."""
        try:
            if self.site:
                await self.site.stop()
            if self.runner:
                await self.runner.cleanup()
            self.logger.info("Status server stopped")
        except Exception as e:
            self.logger.error(f"Error stopping status server: {e}")


def _dumps(obj: Any) -> str:
    return json.dumps(obj, default=str, ensure_ascii=False)
