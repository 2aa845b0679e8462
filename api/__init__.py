"""
HTTP surface of the notification service.

This package provides a single FastAPI application that exposes:
- Subscription management
- The per-user notification inbox
- Service status and the audit log
- The live push stream of catalog events
"""

from api.main import app, create_app

__all__ = ["app", "create_app"]
