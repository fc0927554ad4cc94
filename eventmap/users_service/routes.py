"""
User self-service routes: profile, role upgrade requests, favorite
(interested) events and the creator's own events.
"""

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.auth_service.utils import ROLES, verify_token_from_request
from eventmap.events_service.service import (
    EVENT_SELECT,
    EventValidationError,
    build_event_filters,
    format_event,
    list_events_page,
)
from eventmap.notifications_service.utils import PERMISSION_REQUEST, create_notification
from eventmap.utils.mailer import send_quietly, send_permission_request
from eventmap.utils.pagination import get_pagination_args, paginated
from eventmap.utils.payload import NOT_AN_OBJECT_ERROR, json_object
from eventmap.utils.serialization import serialize_row

users_bp = Blueprint("users", __name__)

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = """
    user_id, name, email, role, company, gender, language, country,
    timezone, avatar, is_verified, created_at, updated_at
"""
EDITABLE_PROFILE_FIELDS = ("name", "gender", "language", "country", "timezone", "avatar")


@users_bp.before_request
def before_request() -> None:
    logger.info(f"[Users] Incoming {request.method} {request.path}")


@users_bp.after_request
def after_request(response: Response) -> Response:
    logger.info(f"[Users] Response {response.status}")
    return response


# --- PROFILE ---
@users_bp.route("/profile", methods=["GET"])
def get_profile() -> Tuple[Response, int]:
    """
    Return the caller's profile.

    Returns:
        200: Profile object (never includes the password hash).
        404: User not found.
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {PROFILE_COLUMNS} FROM users WHERE user_id = %s;", (user_id,))
                user = cur.fetchone()
    except Exception as e:
        logger.error(f"Database error fetching profile for user {user_id}: {e}")
        return jsonify({"error": "Failed to retrieve profile"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify(serialize_row(user)), 200


@users_bp.route("/profile", methods=["PUT"])
def update_profile() -> Tuple[Response, int]:
    """
    Update the caller's profile.

    Editable fields: name, gender, language, country, timezone, avatar.
    Unknown fields are ignored.

    Returns:
        200: Updated profile.
        400: Nothing to update or empty name.
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    updates = {key: data[key] for key in EDITABLE_PROFILE_FIELDS if key in data}

    if not updates:
        return jsonify({"error": "No update data provided"}), 400

    if "name" in updates:
        updates["name"] = (updates["name"] or "").strip()
        if not updates["name"]:
            return jsonify({"error": "Name cannot be empty"}), 400

    set_clause = ", ".join(f"{column} = %s" for column in updates)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE users SET {set_clause}, updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s
                    RETURNING {PROFILE_COLUMNS};
                    """,
                    list(updates.values()) + [user_id],
                )
                user = cur.fetchone()
                conn.commit()
    except Exception as e:
        logger.error(f"Database error updating profile for user {user_id}: {e}")
        return jsonify({"error": "Failed to update profile"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify(serialize_row(user)), 200


# --- ROLE REQUEST ---
@users_bp.route("/role-request", methods=["POST"])
def request_role() -> Tuple[Response, int]:
    """
    Ask the admins for a different role.

    Expects JSON with requested_role. Every admin gets a notification and
    an email.

    Returns:
        201: The created permission request.
        400: Invalid role, same as current, or a request is already pending.
        500: Server error.
    """
    user_id, role, err, code = verify_token_from_request()
    if err:
        return err, code

    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    requested_role = (data.get("requested_role") or "").upper()

    if requested_role not in ROLES:
        return jsonify({"error": f"requested_role must be one of: {', '.join(ROLES)}"}), 400

    if requested_role == role:
        return jsonify({"error": "You already have this role"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT request_id FROM permission_requests WHERE user_id = %s AND status = 'PENDING';",
                    (user_id,),
                )
                if cur.fetchone():
                    return jsonify({"error": "You already have a pending request"}), 400

                cur.execute(
                    """
                    INSERT INTO permission_requests (user_id, requested_role)
                    VALUES (%s, %s)
                    RETURNING request_id, user_id, requested_role, status, created_at;
                    """,
                    (user_id, requested_role),
                )
                permission_request = cur.fetchone()

                cur.execute("SELECT name FROM users WHERE user_id = %s;", (user_id,))
                user_name = cur.fetchone()["name"]

                cur.execute("SELECT user_id, email FROM users WHERE role = 'ADMIN';")
                admins = cur.fetchall()
                for admin in admins:
                    create_notification(
                        cur,
                        admin["user_id"],
                        PERMISSION_REQUEST,
                        "New permission request",
                        f"{user_name} requested the {requested_role} role.",
                        "/admin/permission-requests",
                    )
                conn.commit()
    except Exception as e:
        logger.error(f"Database error creating role request for user {user_id}: {e}")
        return jsonify({"error": "Failed to create permission request"}), 500

    for admin in admins:
        send_quietly(send_permission_request, admin["email"], user_name, requested_role)

    return jsonify(serialize_row(permission_request)), 201


# --- FAVORITES ---
@users_bp.route("/favorites", methods=["GET"])
def list_favorites() -> Tuple[Response, int]:
    """
    Events the caller is interested in, most recently bookmarked first.

    Returns:
        200: {"data": [...], "pagination": {...}}
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request()
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=10)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) AS total FROM user_event_interests WHERE user_id = %s;",
                    (user_id,),
                )
                total = cur.fetchone()["total"]

                cur.execute(
                    f"""
                    {EVENT_SELECT}
                    JOIN user_event_interests i ON i.event_id = e.event_id
                    WHERE i.user_id = %s
                    ORDER BY i.created_at DESC
                    LIMIT %s OFFSET %s;
                    """,
                    (user_id, limit, offset),
                )
                events = [format_event(row) for row in cur.fetchall()]
    except Exception as e:
        logger.error(f"Database error listing favorites for user {user_id}: {e}")
        return jsonify({"error": "Failed to retrieve favorites"}), 500

    for event in events:
        event["is_interested"] = True

    return jsonify(paginated(events, page, limit, total)), 200


# --- MY EVENTS ---
@users_bp.route("/my-events", methods=["GET"])
def list_my_events() -> Tuple[Response, int]:
    """
    Events created by the caller. Restricted to EVENT_CREATOR and ADMIN.

    Query params: search, status, page, limit.

    Returns:
        200: {"data": [...], "pagination": {...}}
        400: Invalid status filter.
        500: Database error.
    """
    user_id, _, err, code = verify_token_from_request(["EVENT_CREATOR", "ADMIN"])
    if err:
        return err, code

    page, limit, offset = get_pagination_args(default_limit=10)

    try:
        where, params = build_event_filters(
            search=request.args.get("search"),
            status=request.args.get("status"),
            creator_id=user_id,
        )
    except EventValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                events, total = list_events_page(cur, where, params, limit, offset)
    except Exception as e:
        logger.error(f"Database error listing events of user {user_id}: {e}")
        return jsonify({"error": "Failed to retrieve your events"}), 500

    return jsonify(paginated(events, page, limit, total)), 200
