"""
Notification endpoints.

- Service status and the audit log of processed events
- Each user's notification inbox
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_inbox, get_runtime
from api.schemas import UserRequest, envelope
from event_driven.runtime import Runtime
from event_driven.services.inbox import NotificationInbox

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


# =============================================================================
# Service status and audit log
# =============================================================================

@router.get("/status")
async def service_status(runtime: Runtime = Depends(get_runtime)):
    """Broker connectivity, consumer counters and event statistics."""
    return envelope(**runtime.status())


@router.get("/events")
async def all_events(runtime: Runtime = Depends(get_runtime)):
    entries = runtime.audit_log.entries()
    return envelope(entries, count=len(entries))


@router.get("/events/{event_type}")
async def events_by_type(event_type: str, runtime: Runtime = Depends(get_runtime)):
    entries = runtime.audit_log.entries(event_type)
    return envelope(entries, eventType=event_type.upper(), count=len(entries))


# =============================================================================
# Inbox
# =============================================================================

@router.get("/user/{user_id}")
async def user_notifications(
    user_id: str,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    runtime: Runtime = Depends(get_runtime),
    inbox: NotificationInbox = Depends(get_inbox),
):
    """A page of the user's notifications, newest first, with the unread count."""
    result = await inbox.page(
        user_id,
        page=page,
        limit=limit or runtime.settings.default_page_size,
        unread_only=unread_only,
    )
    return envelope(
        result.notifications,
        pagination=result.pagination(),
        unreadCount=result.unread_count,
    )


@router.get("/user/{user_id}/unread-count")
async def unread_count(user_id: str, inbox: NotificationInbox = Depends(get_inbox)):
    return envelope({"unreadCount": await inbox.unread_count(user_id)})


@router.put("/mark-all-read")
async def mark_all_read(body: UserRequest, inbox: NotificationInbox = Depends(get_inbox)):
    modified = await inbox.mark_all_read(body.user_id)
    return envelope({"modifiedCount": modified}, message="All notifications marked as read")


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    body: UserRequest,
    inbox: NotificationInbox = Depends(get_inbox),
):
    notification = await inbox.mark_read(notification_id, body.user_id)
    return envelope(notification, message="Notification marked as read")


# Declared before /{notification_id} so "delete-all" is not taken for an id
@router.delete("/delete-all")
async def delete_all(body: UserRequest, inbox: NotificationInbox = Depends(get_inbox)):
    deleted = await inbox.delete_all(body.user_id)
    return envelope({"deletedCount": deleted}, message="All notifications deleted")


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    body: UserRequest,
    inbox: NotificationInbox = Depends(get_inbox),
):
    await inbox.delete(notification_id, body.user_id)
    return envelope(message="Notification deleted")
