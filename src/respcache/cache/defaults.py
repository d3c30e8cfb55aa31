"""Built-in endpoint and event tables.

Endpoint keys are anchored regexes evaluated against the normalized request
path, in declaration order. Event values list the key patterns purged when the
event fires. Both tables use the same shape as a JSON policy file, so a file
passed via ``RESPCACHE_POLICY_FILE`` can replace them wholesale.
"""

from __future__ import annotations

from typing import Any, Final

# Fallback TTL for a store call that has neither a policy TTL nor an override
DEFAULT_TTL: Final = 21600  # 6 hours

_OBJECT_ID = "[a-f0-9]{24}"

DEFAULT_ENDPOINTS: Final[dict[str, dict[str, Any]]] = {
    # Current user's profile
    "^/api/user$": {
        "ttlSeconds": 3600,
        "cachePerUser": True,
        "allowedQueryParams": [],
        "invalidateOn": ["user-updated", "user-profile-updated"],
    },
    "^/api/bookings$": {
        "ttlSeconds": 1800,
        "cachePerUser": True,
        "allowedQueryParams": ["page", "limit"],
        "invalidateOn": ["booking-created", "booking-updated", "booking-deleted"],
    },
    "^/api/bookings/all$": {
        "ttlSeconds": 1800,
        "cachePerUser": True,
        "allowedQueryParams": ["page", "limit"],
        "invalidateOn": ["booking-created", "booking-updated", "booking-deleted"],
    },
    f"^/api/bookings/{_OBJECT_ID}$": {
        "ttlSeconds": 1800,
        "cachePerUser": True,
        "allowedQueryParams": [],
        "invalidateOn": ["booking-updated", "booking-deleted"],
    },
    f"^/api/payments/{_OBJECT_ID}$": {
        "ttlSeconds": 3600,
        "cachePerUser": True,
        "allowedQueryParams": [],
        "invalidateOn": ["payment-updated", "payment-deleted"],
    },
    # Admin views share one cache entry across all admins
    "^/api/admin/users$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": ["page", "limit"],
        "invalidateOn": ["user-created", "user-updated", "user-deleted", "admin-data-changed"],
    },
    f"^/api/admin/users/{_OBJECT_ID}$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": [],
        "invalidateOn": ["user-updated", "user-deleted", "user-login", "admin-data-changed"],
    },
    "^/api/admin/bookings$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": ["page", "limit", "showPastBookings"],
        "invalidateOn": [
            "booking-created",
            "booking-updated",
            "booking-deleted",
            "admin-data-changed",
        ],
    },
    "^/api/admin/bookings/timeline$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": ["startDate", "endDate"],
        "invalidateOn": [
            "booking-created",
            "booking-updated",
            "booking-deleted",
            "admin-data-changed",
        ],
    },
    f"^/api/admin/bookings/{_OBJECT_ID}$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": [],
        "invalidateOn": ["booking-updated", "booking-deleted", "admin-data-changed"],
    },
    "^/api/admin/payments$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": ["page", "limit", "status"],
        "invalidateOn": [
            "payment-created",
            "payment-updated",
            "payment-deleted",
            "admin-data-changed",
        ],
    },
    "^/api/admin/invitations$": {
        "ttlSeconds": 300,
        "cachePerUser": False,
        "allowedQueryParams": ["page", "limit"],
        "invalidateOn": ["invitation-created", "invitation-deleted", "admin-data-changed"],
    },
}

DEFAULT_EVENTS: Final[dict[str, list[dict[str, Any]]]] = {
    # Only the admin detail page of the user who logged in
    "user-login": [
        {
            "pattern": "admin:users",
            "pathVariables": {
                "urlTemplate": "/api/admin/users/{{userId}}",
                "variableName": "userId",
            },
        },
    ],
    "user-created": [{"pattern": "admin:users:*"}],
    "user-updated": [
        {"pattern": "user:*", "userScoped": True},
        {"pattern": "admin:users:*"},
    ],
    "user-deleted": [
        {"pattern": "user:*", "userScoped": True},
        {"pattern": "admin:users:*"},
    ],
    "user-profile-updated": [
        {"pattern": "user:*", "userScoped": True},
        {"pattern": "admin:users:*"},
    ],
    "booking-created": [
        {"pattern": "bookings:*", "userScoped": True},
        {"pattern": "admin:bookings:*"},
    ],
    "booking-updated": [
        {"pattern": "bookings:*", "userScoped": True},
        {"pattern": "admin:bookings:*"},
    ],
    "booking-deleted": [
        {"pattern": "bookings:*", "userScoped": True},
        {"pattern": "admin:bookings:*"},
    ],
    "payment-updated": [
        {"pattern": "payments:*", "userScoped": True},
        {"pattern": "bookings:*", "userScoped": True},
        {"pattern": "admin:payments:*"},
    ],
    "invitation-created": [{"pattern": "admin:invitations:*"}],
    "invitation-deleted": [{"pattern": "admin:invitations:*"}],
    "admin-data-changed": [{"pattern": "admin:*"}],
}
