"""FastAPI dependency utilities."""

from fastapi import Depends, Request

from event_driven.push import PushHub
from event_driven.runtime import Runtime
from event_driven.services.inbox import NotificationInbox
from event_driven.services.subscriptions import SubscriptionService


def get_runtime(request: Request) -> Runtime:
    """The Runtime created by the application lifespan."""
    return request.app.state.runtime


def get_subscriptions(runtime: Runtime = Depends(get_runtime)) -> SubscriptionService:
    return runtime.subscriptions


def get_inbox(runtime: Runtime = Depends(get_runtime)) -> NotificationInbox:
    return runtime.inbox


def get_push_hub(runtime: Runtime = Depends(get_runtime)) -> PushHub:
    return runtime.push_hub
