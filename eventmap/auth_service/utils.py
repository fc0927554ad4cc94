"""
Shared authentication helpers.
Provides token creation, verification, and role enforcement.
"""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Tuple, Optional
from flask import jsonify, request, Response
from dotenv import load_dotenv

# Load .env only once here
load_dotenv()

# Load secrets & configs
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is missing. Set it in .env")

JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET") or JWT_SECRET

TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 10080))  # Default 7 days
REFRESH_TOKEN_EXPIRATION_MINUTES = int(os.getenv("REFRESH_TOKEN_EXPIRATION_MINUTES", 43200))  # Default 30 days

ROLES = ("USER", "EVENT_CREATOR", "ADMIN")


# --- JWT CREATION ---
def create_token(user_id: int, role: str, email: Optional[str] = None) -> str:
    """
    Generates a new access JWT for a given user.

    Args:
        user_id (int): The unique ID of the user.
        role (str): The role of the user (USER, EVENT_CREATOR, ADMIN).
        email (str, optional): Included in the payload for client display.

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def create_refresh_token(user_id: int) -> str:
    """
    Generates a long-lived refresh JWT signed with the refresh secret.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "exp": now + timedelta(minutes=REFRESH_TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }

    return jwt.encode(payload, JWT_REFRESH_SECRET, algorithm="HS256")


def _subject_to_id(sub: Optional[str]) -> Optional[int]:
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None


# --- JWT VALIDATION ---
def verify_token_from_request(required_roles: Optional[list] = None) -> Tuple[Optional[int], Optional[str], Optional[Response], Optional[int]]:
    """
    Verify the JWT in the Authorization header.

    Args:
        required_roles (list, optional): List of allowed roles.

    Returns:
        tuple: (user_id, role, error_response, status_code)
               If successful, error_response and status_code are None.
               If failed, user_id and role are None.
    """

    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        return None, None, jsonify({"error": "missing token"}), 401

    token = auth.split(" ", 1)[1]

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None, None, jsonify({"error": "token expired"}), 401
    except jwt.InvalidTokenError:
        return None, None, jsonify({"error": "invalid token"}), 401

    user_id = _subject_to_id(payload.get("sub"))
    role = payload.get("role")

    # Refresh tokens are only accepted by /auth/refresh
    if user_id is None or payload.get("type") == "refresh":
        return None, None, jsonify({"error": "invalid token"}), 401

    if required_roles and role not in required_roles:
        return None, None, jsonify({"error": "permission denied"}), 403

    return user_id, role, None, None


def verify_token(token: str) -> Optional[int]:
    """
    Validate an access JWT manually (optional usage).

    Args:
        token (str): JWT string.

    Returns:
        int: user_id if valid, None otherwise.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") == "refresh":
        return None
    return _subject_to_id(payload.get("sub"))


def verify_refresh_token(token: str) -> Optional[int]:
    """
    Validate a refresh JWT.

    Returns:
        int: user_id if valid, None otherwise.
    """
    try:
        payload = jwt.decode(token, JWT_REFRESH_SECRET, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") != "refresh":
        return None
    return _subject_to_id(payload.get("sub"))
