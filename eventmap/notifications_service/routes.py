"""
In-app notification inbox for the signed-in user.
"""

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.auth_service.utils import verify_token_from_request
from eventmap.utils.pagination import get_pagination_args, paginated
from eventmap.utils.serialization import serialize_row, serialize_rows

notifications_bp = Blueprint("notifications", __name__)

logger = logging.getLogger(__name__)

NOTIFICATION_COLUMNS = "notification_id, user_id, type, title, message, link, is_read, created_at"


@notifications_bp.before_request
def before_request() -> None:
    logger.info(f"[Notifications] Incoming {request.method} {request.path}")


@notifications_bp.after_request
def after_request(response: Response) -> Response:
    logger.info(f"[Notifications] Response {response.status}")
    return response


@notifications_bp.route("/", methods=["GET"])
def list_notifications() -> Tuple[Response, int]:
    """
    The caller's notifications, newest first.

    Query params:
    - unread_only (str): "true" to hide read notifications.
    - page, limit: Pagination (default limit 20).

    Returns:
        200: {"data": [...], "pagination": {...}, "unread_count": int}
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=20)
    unread_only = (request.args.get("unread_only") or "").lower() == "true"

    where = "WHERE user_id = %s"
    if unread_only:
        where += " AND is_read = FALSE"

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) AS total FROM notifications {where};", (user_id,))
                total = cur.fetchone()["total"]

                cur.execute(
                    "SELECT COUNT(*) AS total FROM notifications WHERE user_id = %s AND is_read = FALSE;",
                    (user_id,),
                )
                unread_count = cur.fetchone()["total"]

                cur.execute(
                    f"""
                    SELECT {NOTIFICATION_COLUMNS} FROM notifications {where}
                    ORDER BY created_at DESC
                    LIMIT %s OFFSET %s;
                    """,
                    (user_id, limit, offset),
                )
                notifications = serialize_rows(cur.fetchall())
    except Exception as e:
        logger.error(f"Database error listing notifications for user {user_id}: {e}")
        return jsonify({"error": "Failed to retrieve notifications"}), 500

    body = paginated(notifications, page, limit, total)
    body["unread_count"] = unread_count
    return jsonify(body), 200


@notifications_bp.route("/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id: int) -> Tuple[Response, int]:
    """
    Mark one notification as read.

    Returns:
        200: The updated notification.
        403: Belongs to another user.
        404: Notification not found.
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT user_id FROM notifications WHERE notification_id = %s;",
                    (notification_id,),
                )
                notification = cur.fetchone()
                if not notification:
                    return jsonify({"error": "Notification not found"}), 404

                if notification["user_id"] != user_id:
                    return jsonify({"error": "Not authorized"}), 403

                cur.execute(
                    f"""
                    UPDATE notifications SET is_read = TRUE
                    WHERE notification_id = %s
                    RETURNING {NOTIFICATION_COLUMNS};
                    """,
                    (notification_id,),
                )
                updated = cur.fetchone()
                conn.commit()
    except Exception as e:
        logger.error(f"Database error marking notification {notification_id} read: {e}")
        return jsonify({"error": "Failed to update notification"}), 500

    return jsonify(serialize_row(updated)), 200


@notifications_bp.route("/read-all", methods=["PUT"])
def mark_all_read() -> Tuple[Response, int]:
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE notifications SET is_read = TRUE WHERE user_id = %s AND is_read = FALSE;",
                    (user_id,),
                )
                conn.commit()
    except Exception as e:
        logger.error(f"Database error marking notifications read for user {user_id}: {e}")
        return jsonify({"error": "Failed to update notifications"}), 500

    return jsonify({"message": "All notifications marked as read"}), 200
