"""API routers package."""

from naafe.api import users, job_requests, offers, payments, notifications, events, deps

__all__ = [
    "users",
    "job_requests",
    "offers",
    "payments",
    "notifications",
    "events",
    "deps",
]
