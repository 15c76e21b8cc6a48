from __future__ import annotations

from fastapi import APIRouter

from railpay.api.routes import checkout, health, payments, subscriptions, webhooks

__all__ = ["load_routers"]


def load_routers() -> tuple[APIRouter, ...]:
    """Return every API router in registration order."""

    return (
        health.router,
        checkout.router,
        payments.router,
        webhooks.router,
        subscriptions.router,
    )
