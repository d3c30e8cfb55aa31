"""CLI commands for the response cache.

Provides command-line interface using Typer:
- respcache policies: List cached routes and invalidation events
- respcache key: Show the cache key a request maps to
- respcache invalidate: Fire an invalidation event by hand
- respcache purge: Delete keys matching a raw pattern
- respcache serve: Run the cache-enabled API server

Usage:
    respcache --help
    respcache key /api/bookings --user 507f1f77bcf86cd799439011 --query page=2
    respcache invalidate booking-updated --user 507f1f77bcf86cd799439011
    respcache purge "cache:admin:*"
"""

import typer

from respcache.cli.invalidate_cmd import invalidate, purge
from respcache.cli.policies_cmd import key, policies
from respcache.cli.serve import serve

# Main CLI application
app = typer.Typer(
    name="respcache",
    help="respcache: read-through response cache and event-driven invalidation",
    no_args_is_help=True,
)

app.command("policies", help="List cached routes and invalidation events")(policies)
app.command("key", help="Show the cache key a request maps to")(key)
app.command("invalidate", help="Fire an invalidation event by hand")(invalidate)
app.command("purge", help="Delete keys matching a raw pattern")(purge)
app.command("serve", help="Run the cache-enabled API server")(serve)


@app.callback()
def callback() -> None:
    """respcache: read-through response cache and event-driven invalidation."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
