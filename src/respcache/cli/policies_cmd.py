"""CLI commands for inspecting cache policies.

Usage:
    respcache policies
    respcache policies --format json
    respcache key /api/admin/users --user 507f1f77bcf86cd799439011 --query page=2
"""

from __future__ import annotations

import orjson
import typer

from respcache.cache.keys import CacheKeys
from respcache.cache.policy import load_registry
from respcache.config import settings


def parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    """Parse repeated ``name=value`` options."""
    parsed: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"expected name=value, got {pair!r}", param_hint=option)
        parsed[name] = value
    return parsed


def policies(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """List the configured cache policies and invalidation events."""
    registry = load_registry(settings.policy_file)

    if output_format == "json":
        data = {
            "endpoints": {
                p.route: {
                    "ttlSeconds": p.ttl_seconds,
                    "cachePerUser": p.cache_per_user,
                    "allowedQueryParams": sorted(p.allowed_query_params),
                    "invalidateOn": list(p.invalidate_on),
                }
                for p in registry.routes()
            },
            "events": {
                name: [rule.pattern for rule in registry.rules_for(name) or ()]
                for name in registry.event_names()
            },
        }
        typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())
        return

    typer.echo("Routes:")
    for policy in registry.routes():
        params = ",".join(sorted(policy.allowed_query_params)) or "-"
        scope = "per-user" if policy.cache_per_user else "shared"
        typer.echo(f"  {policy.route}  ttl={policy.ttl_seconds}s  {scope}  params={params}")

    typer.echo()
    typer.echo("Events:")
    for name in registry.event_names():
        rules = registry.rules_for(name) or ()
        typer.echo(f"  {name}: " + ", ".join(f"{r.pattern} ({r.kind.value})" for r in rules))


def key(
    path: str = typer.Argument(..., help="Request path, e.g. /api/bookings"),
    user: str = typer.Option(..., "--user", "-u", help="Caller user id"),
    query: list[str] = typer.Option(
        [],
        "--query",
        "-q",
        help="Query parameter as name=value (repeatable)",
    ),
) -> None:
    """Print the cache key for a GET request, or why it is not cached."""
    registry = load_registry(settings.policy_file)
    params = parse_pairs(query, "--query")
    normalized = CacheKeys.normalize_path(path)
    policy = registry.match_policy(normalized)

    if policy is None:
        typer.echo(f"{normalized} is not cached (no matching policy)")
        raise typer.Exit(code=1)
    if not CacheKeys.validate_query(params, policy):
        typer.echo(f"{normalized} is not cached (disallowed query parameters)")
        raise typer.Exit(code=1)

    typer.echo(CacheKeys.build(user, normalized, params, policy))
