"""CLI commands for purging cached responses.

Usage:
    respcache invalidate booking-updated --user 507f1f77bcf86cd799439011
    respcache invalidate user-login --var userId=507f1f77bcf86cd799439011
    respcache purge "cache:admin:bookings:*"
"""

from __future__ import annotations

import asyncio

import typer

from respcache.cache.invalidation import InvalidationContext, InvalidationEngine
from respcache.cache.policy import load_registry
from respcache.cache.redis import RedisCacheStore, close_redis, get_redis
from respcache.cli.policies_cmd import parse_pairs
from respcache.config import settings


async def _build_engine(redis_url: str | None) -> InvalidationEngine:
    client = await get_redis(redis_url)
    return InvalidationEngine(
        load_registry(settings.policy_file),
        RedisCacheStore(client),
        scan_count=settings.scan_count,
    )


def invalidate(
    event: str = typer.Argument(..., help="Event name, e.g. booking-updated"),
    user: str | None = typer.Option(None, "--user", "-u", help="User id for user-scoped rules"),
    var: list[str] = typer.Option(
        [],
        "--var",
        help="Context variable as name=value (repeatable)",
    ),
    redis_url: str | None = typer.Option(None, "--redis-url", help="Override REDIS_URL"),
) -> None:
    """Run the invalidation rules of an event against Redis."""
    variables = parse_pairs(var, "--var")
    if user:
        variables.setdefault("userId", user)
    context = InvalidationContext(user_id=user, variables=variables)

    async def run() -> tuple[int, bool]:
        try:
            engine = await _build_engine(redis_url)
            if engine.registry.rules_for(event) is None:
                typer.echo(f"Unknown event: {event}", err=True)
                return 0, False
            return await engine.invalidate(event, context)
        finally:
            await close_redis()

    deleted, ok = asyncio.run(run())
    if not ok:
        typer.echo(f"Invalidation of {event} incomplete ({deleted} keys deleted)", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {deleted} keys for {event}")


def purge(
    pattern: str = typer.Argument(..., help="Redis MATCH pattern, e.g. cache:admin:*"),
    redis_url: str | None = typer.Option(None, "--redis-url", help="Override REDIS_URL"),
) -> None:
    """Delete every key matching a pattern."""

    async def run() -> tuple[int, bool]:
        try:
            engine = await _build_engine(redis_url)
            return await engine.invalidate_patterns([pattern])
        finally:
            await close_redis()

    deleted, ok = asyncio.run(run())
    if not ok:
        typer.echo(f"Purge of {pattern} failed after {deleted} keys", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {deleted} keys matching {pattern}")
