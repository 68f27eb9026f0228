# Overview: Service-layer operations for notifications; persistence first, push second.

from __future__ import annotations

from flask import current_app

from ..authorization import Identity, ensure_owner
from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification
from .push_service import (
    EVENT_ALL_NOTIFICATIONS_READ,
    EVENT_NOTIFICATION_DELETED,
    EVENT_NOTIFICATION_UPDATED,
    EVENT_RECEIVE_NOTIFICATION,
)

MAX_MESSAGE_LENGTH = 1000


def get_push_dispatcher():
    return current_app.extensions["push_dispatcher"]


def _truncate(message: str) -> str:
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message
    return message[: MAX_MESSAGE_LENGTH - 3] + "..."


def record(recipient_user_id: int, message: str) -> Notification:
    """
    Stage an unread notification in the current session without committing.

    Callers that mutate other rows commit once so the notification and the
    mutation land atomically, then call publish().
    """
    notification = Notification(user_id=recipient_user_id, message=_truncate(message), is_read=False)
    db.session.add(notification)
    return notification


def publish(notification: Notification) -> None:
    """Best-effort push of a committed notification. Never raises."""
    try:
        get_push_dispatcher().push_to_user(
            notification.user_id, EVENT_RECEIVE_NOTIFICATION, notification.message
        )
    except Exception:
        current_app.logger.exception("Push of notification %s failed", notification.id)


def broadcast(group: str, message: str) -> None:
    """Push-only message to a named group; nothing is persisted."""
    try:
        get_push_dispatcher().push_to_group(group, EVENT_RECEIVE_NOTIFICATION, message)
    except Exception:
        current_app.logger.exception("Push broadcast to %s failed", group)


def notify(recipient_user_id: int, message: str) -> Notification:
    """Persist a notification for one recipient, then attempt push delivery."""
    notification = record(recipient_user_id, message)
    db.session.commit()
    publish(notification)
    return notification


def _push_update(user_id: int, event: str, payload: dict) -> None:
    try:
        get_push_dispatcher().push_to_user(user_id, event, payload)
    except Exception:
        current_app.logger.exception("Push of %s for user %s failed", event, user_id)


def _get_owned(identity: Identity, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    ensure_owner(identity, notification.user_id)
    return notification


def list_notifications(identity: Identity) -> list[Notification]:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == identity.user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )


def unread_count(identity: Identity) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == identity.user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(identity: Identity, notification_id: int) -> Notification:
    notification = _get_owned(identity, notification_id)
    if notification.is_read:
        return notification

    notification.is_read = True
    db.session.commit()

    _push_update(identity.user_id, EVENT_NOTIFICATION_UPDATED, {
        "notificationId": notification.id,
        "isRead": True,
        "unreadCount": unread_count(identity),
    })
    return notification


def mark_all_read(identity: Identity) -> int:
    """Returns the number of notifications flipped to read."""
    marked = (
        db.session.query(Notification)
        .filter(Notification.user_id == identity.user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()

    _push_update(identity.user_id, EVENT_ALL_NOTIFICATIONS_READ, {"unreadCount": unread_count(identity)})
    return marked


def delete(identity: Identity, notification_id: int) -> None:
    notification = _get_owned(identity, notification_id)
    db.session.delete(notification)
    db.session.commit()

    _push_update(identity.user_id, EVENT_NOTIFICATION_DELETED, {
        "notificationId": notification_id,
        "unreadCount": unread_count(identity),
    })
