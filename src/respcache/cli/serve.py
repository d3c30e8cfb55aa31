"""CLI command for running the cache-enabled API server.

Usage:
    respcache serve
    respcache serve --port 9000 --reload
"""

from __future__ import annotations

import typer

from respcache.config import settings


def serve(
    host: str = typer.Option(settings.host, "--host", help="Interface to bind"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    log_level: str = typer.Option(
        settings.log_level, "--log-level", "-l", help="debug, info, warning or error"
    ),
) -> None:
    """Run the cache-enabled FastAPI app under uvicorn."""
    import uvicorn

    typer.echo(f"Serving respcache on http://{host}:{port}")
    uvicorn.run(
        "respcache.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )
