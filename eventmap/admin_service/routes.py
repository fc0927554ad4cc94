"""
Admin dashboard routes. Every endpoint requires the ADMIN role.

- Dashboard statistics
- User management (list, read, update, delete)
- Event moderation (list, update, delete any event)
- Permission request review
"""

import logging
import re
from datetime import timedelta
from typing import Tuple

import psycopg2.errors
from flask import Blueprint, request, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.auth_service.utils import ROLES, verify_token_from_request
from eventmap.events_service.service import (
    EventValidationError,
    announce_event_cancelled,
    announce_event_change,
    build_event_filters,
    delete_event as remove_event,
    fetch_event,
    format_event,
    list_events_page,
    update_event as apply_event_update,
    validate_event_payload,
)
from eventmap.events_service.status import refresh_stale_statuses
from eventmap.notifications_service.utils import PERMISSION_REQUEST, create_notification
from eventmap.utils.dates import APP_TIMEZONE, now_local, now_utc
from eventmap.utils.mailer import send_quietly, send_event_changed, send_event_cancelled
from eventmap.utils.pagination import get_pagination_args, paginated
from eventmap.utils.payload import NOT_AN_OBJECT_ERROR, json_object
from eventmap.utils.serialization import serialize_row, serialize_rows

admin_bp = Blueprint("admin", __name__)

logger = logging.getLogger(__name__)

ADMIN_ONLY = ["ADMIN"]
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USER_COLUMNS = """
    user_id, name, email, role, company, gender, language, country,
    timezone, avatar, is_verified, created_at, updated_at
"""
ADMIN_EDITABLE_USER_FIELDS = ("name", "email", "role", "gender", "language", "country", "timezone", "avatar")
REQUEST_STATUSES = ("PENDING", "APPROVED", "REJECTED")


@admin_bp.before_request
def before_request() -> None:
    logger.info(f"[Admin] Incoming {request.method} {request.path}")


@admin_bp.after_request
def after_request(response: Response) -> Response:
    logger.info(f"[Admin] Response {response.status}")
    return response


# --- STATS ---
@admin_bp.route("/stats", methods=["GET"])
def get_stats() -> Tuple[Response, int]:
    """
    Dashboard counters.

    Returns:
        200: {totalUsers, totalEvents, eventsToday, newUsers, eventsByMonth}
            eventsToday counts events starting today in the app timezone,
            newUsers counts sign-ups in the last 7 days and eventsByMonth
            groups events created in the last 12 months.
        500: Database error.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    today_start = now_local().replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow_start = today_start + timedelta(days=1)
    week_ago = now_utc() - timedelta(days=7)
    year_ago = now_utc() - timedelta(days=365)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) AS total FROM users;")
                total_users = cur.fetchone()["total"]

                cur.execute("SELECT COUNT(*) AS total FROM events;")
                total_events = cur.fetchone()["total"]

                cur.execute(
                    "SELECT COUNT(*) AS total FROM events WHERE start_time >= %s AND start_time < %s;",
                    (today_start, tomorrow_start),
                )
                events_today = cur.fetchone()["total"]

                cur.execute("SELECT COUNT(*) AS total FROM users WHERE created_at >= %s;", (week_ago,))
                new_users = cur.fetchone()["total"]

                cur.execute(
                    """
                    SELECT to_char(date_trunc('month', created_at AT TIME ZONE %s), 'YYYY-MM') AS month,
                           COUNT(*) AS count
                    FROM events
                    WHERE created_at >= %s
                    GROUP BY 1
                    ORDER BY 1;
                    """,
                    (APP_TIMEZONE.key, year_ago),
                )
                events_by_month = [dict(row) for row in cur.fetchall()]
    except Exception as e:
        logger.error(f"Database error computing admin stats: {e}")
        return jsonify({"error": "Failed to retrieve statistics"}), 500

    return jsonify({
        "totalUsers": total_users,
        "totalEvents": total_events,
        "eventsToday": events_today,
        "newUsers": new_users,
        "eventsByMonth": events_by_month
    }), 200


# --- USERS ---
@admin_bp.route("/users", methods=["GET"])
def list_users() -> Tuple[Response, int]:
    """
    Paginated user list, newest first.

    Query params:
    - search (str): Matches name or email, case-insensitive.
    - role (str): Exact role filter.

    Returns:
        200: {"data": [...], "pagination": {...}}
        500: Database error.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=10)
    search = request.args.get("search")
    role = request.args.get("role")

    where = "WHERE 1=1"
    params = []
    if search:
        where += " AND (name ILIKE %s OR email ILIKE %s)"
        params.extend([f"%{search}%", f"%{search}%"])
    if role:
        where += " AND role = %s"
        params.append(role.upper())

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) AS total FROM users {where};", params)
                total = cur.fetchone()["total"]

                cur.execute(
                    f"SELECT {USER_COLUMNS} FROM users {where} ORDER BY created_at DESC LIMIT %s OFFSET %s;",
                    params + [limit, offset],
                )
                users = serialize_rows(cur.fetchall())
    except Exception as e:
        logger.error(f"Database error listing users: {e}")
        return jsonify({"error": "Failed to retrieve users"}), 500

    return jsonify(paginated(users, page, limit, total)), 200


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
def get_user(user_id: int) -> Tuple[Response, int]:
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE user_id = %s;", (user_id,))
                user = cur.fetchone()
    except Exception as e:
        logger.error(f"Database error fetching user {user_id}: {e}")
        return jsonify({"error": "Failed to retrieve user"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify(serialize_row(user)), 200


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
def update_user(user_id: int) -> Tuple[Response, int]:
    """
    Update any user's profile, email or role.

    Setting a role approves the user's PENDING permission request for that
    role, if any, and notifies the user.

    Returns:
        200: Updated user.
        400: Invalid role/email or email already taken.
        404: User not found.
        500: Database error.
    """
    admin_id, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    updates = {key: data[key] for key in ADMIN_EDITABLE_USER_FIELDS if key in data}

    if not updates:
        return jsonify({"error": "No update data provided"}), 400

    if "role" in updates:
        updates["role"] = (updates["role"] or "").upper()
        if updates["role"] not in ROLES:
            return jsonify({"error": f"role must be one of: {', '.join(ROLES)}"}), 400

    if "email" in updates:
        updates["email"] = (updates["email"] or "").strip().lower()
        if not EMAIL_RE.match(updates["email"]):
            return jsonify({"error": "Invalid email format"}), 400

    set_clause = ", ".join(f"{column} = %s" for column in updates)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id FROM users WHERE user_id = %s;", (user_id,))
                if not cur.fetchone():
                    return jsonify({"error": "User not found"}), 404

                if "email" in updates:
                    cur.execute(
                        "SELECT user_id FROM users WHERE email = %s AND user_id <> %s;",
                        (updates["email"], user_id),
                    )
                    if cur.fetchone():
                        return jsonify({"error": "Email already taken"}), 400

                if "role" in updates:
                    cur.execute(
                        """
                        UPDATE permission_requests
                        SET status = 'APPROVED', processed_at = CURRENT_TIMESTAMP, processed_by = %s
                        WHERE user_id = %s AND status = 'PENDING' AND requested_role = %s;
                        """,
                        (admin_id, user_id, updates["role"]),
                    )

                cur.execute(
                    f"""
                    UPDATE users SET {set_clause}, updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s
                    RETURNING {USER_COLUMNS};
                    """,
                    list(updates.values()) + [user_id],
                )
                user = cur.fetchone()

                if "role" in updates:
                    create_notification(
                        cur,
                        user_id,
                        PERMISSION_REQUEST,
                        "Role Updated",
                        f"Your role has been updated to {updates['role']}",
                    )
                conn.commit()
    except Exception as e:
        logger.error(f"Database error updating user {user_id}: {e}")
        return jsonify({"error": "Failed to update user"}), 500

    return jsonify(serialize_row(user)), 200


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int) -> Tuple[Response, int]:
    """
    Delete a user. Admin accounts cannot be deleted.

    Returns:
        200: Deleted.
        400: Target is an admin.
        404: User not found.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id, role FROM users WHERE user_id = %s;", (user_id,))
                user = cur.fetchone()
                if not user:
                    return jsonify({"error": "User not found"}), 404

                if user["role"] == "ADMIN":
                    return jsonify({"error": "Cannot delete admin user"}), 400

                cur.execute("DELETE FROM users WHERE user_id = %s;", (user_id,))
                conn.commit()
    except Exception as e:
        logger.error(f"Database error deleting user {user_id}: {e}")
        return jsonify({"error": "Failed to delete user"}), 500

    return jsonify({"message": "User deleted successfully"}), 200


# --- EVENTS ---
@admin_bp.route("/events", methods=["GET"])
def list_all_events() -> Tuple[Response, int]:
    """
    Every event with the public listing filters (search, category, region,
    status). Paginated, newest first.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=10)

    try:
        where, params = build_event_filters(
            search=request.args.get("search"),
            category=request.args.get("category"),
            region=request.args.get("region"),
            status=request.args.get("status"),
        )
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                refresh_stale_statuses(cur)
                conn.commit()
                events, total = list_events_page(cur, where, params, limit, offset)
    except Exception as e:
        logger.error(f"Database error listing events for admin: {e}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify(paginated(events, page, limit, total)), 200


@admin_bp.route("/events/<int:event_id>", methods=["PUT"])
def update_any_event(event_id: int) -> Tuple[Response, int]:
    """
    Update any event with the same validation as the public edit route.
    Interested users are notified of name, location or time changes.

    Returns:
        200: Updated event.
        400: Validation error.
        404: Event not found.
        500: Server error.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400

    try:
        fields = validate_event_payload(data, partial=True)
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not fields:
        return jsonify({"error": "No update data provided"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event(cur, event_id)
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                changes = apply_event_update(cur, event, fields)
                updated = fetch_event(cur, event_id)
                recipients = announce_event_change(cur, event, changes)
                conn.commit()
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400
    except psycopg2.errors.ForeignKeyViolation:
        return jsonify({"error": "Invalid category or region"}), 400
    except Exception as e:
        logger.error(f"Database error updating event {event_id} as admin: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    for email in recipients:
        send_quietly(send_event_changed, email, event["name"], changes)

    return jsonify(format_event(updated)), 200


@admin_bp.route("/events/<int:event_id>", methods=["DELETE"])
def delete_any_event(event_id: int) -> Tuple[Response, int]:
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event(cur, event_id)
                if not event:
                    return jsonify({"error": "Event not found"}), 404

                recipients = announce_event_cancelled(cur, event)
                remove_event(cur, event_id)
                conn.commit()
    except Exception as e:
        logger.error(f"Database error deleting event {event_id} as admin: {e}")
        return jsonify({"error": "Failed to delete event"}), 500

    for email in recipients:
        send_quietly(send_event_cancelled, email, event["name"])

    return jsonify({"message": "Event deleted successfully"}), 200


# --- PERMISSION REQUESTS ---
@admin_bp.route("/permission-requests", methods=["GET"])
def list_permission_requests() -> Tuple[Response, int]:
    """
    Permission requests with the requesting user, oldest first.

    Query params:
    - status (str): PENDING (default), APPROVED or REJECTED.

    Returns:
        200: {"data": [...], "pagination": {...}}
        400: Invalid status.
        500: Database error.
    """
    _, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=10)
    status = (request.args.get("status") or "PENDING").upper()
    if status not in REQUEST_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(REQUEST_STATUSES)}"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) AS total FROM permission_requests WHERE status = %s;",
                    (status,),
                )
                total = cur.fetchone()["total"]

                cur.execute(
                    """
                    SELECT p.request_id, p.user_id, p.requested_role, p.status,
                           p.created_at, p.processed_at, p.processed_by,
                           u.name AS user_name, u.email AS user_email, u.role AS user_role
                    FROM permission_requests p
                    JOIN users u ON p.user_id = u.user_id
                    WHERE p.status = %s
                    ORDER BY p.created_at ASC
                    LIMIT %s OFFSET %s;
                    """,
                    (status, limit, offset),
                )
                requests_ = serialize_rows(cur.fetchall())
    except Exception as e:
        logger.error(f"Database error listing permission requests: {e}")
        return jsonify({"error": "Failed to retrieve permission requests"}), 500

    return jsonify(paginated(requests_, page, limit, total)), 200


@admin_bp.route("/permission-requests/<int:request_id>/reject", methods=["POST"])
def reject_permission_request(request_id: int) -> Tuple[Response, int]:
    """
    Reject a PENDING permission request and notify the requester.

    Returns:
        200: The updated request.
        400: Request already processed.
        404: Request not found.
        500: Database error.
    """
    admin_id, _, err, code = verify_token_from_request(ADMIN_ONLY)
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT request_id, user_id, requested_role, status FROM permission_requests WHERE request_id = %s;",
                    (request_id,),
                )
                permission_request = cur.fetchone()
                if not permission_request:
                    return jsonify({"error": "Permission request not found"}), 404

                if permission_request["status"] != "PENDING":
                    return jsonify({"error": "Permission request already processed"}), 400

                cur.execute(
                    """
                    UPDATE permission_requests
                    SET status = 'REJECTED', processed_at = CURRENT_TIMESTAMP, processed_by = %s
                    WHERE request_id = %s
                    RETURNING request_id, user_id, requested_role, status, created_at, processed_at, processed_by;
                    """,
                    (admin_id, request_id),
                )
                updated = cur.fetchone()

                create_notification(
                    cur,
                    permission_request["user_id"],
                    PERMISSION_REQUEST,
                    "Permission request rejected",
                    f"Your request for the {permission_request['requested_role']} role was rejected.",
                )
                conn.commit()
    except Exception as e:
        logger.error(f"Database error rejecting permission request {request_id}: {e}")
        return jsonify({"error": "Failed to reject permission request"}), 500

    return jsonify(serialize_row(updated)), 200
