"""
Authentication service route handlers.

Provides routes for:
- User registration (with email verification code)
- Email verification
- User login (access + refresh token)
- Access token refresh
- Forgot/reset password
- Resending verification or reset codes

All JWT logic is delegated to `auth_service.utils`.
"""

import logging
import re
import secrets
import smtplib
from datetime import timedelta
from typing import Tuple

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from flask import Blueprint, request, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.auth_service.utils import create_token, create_refresh_token, verify_refresh_token
from eventmap.utils.dates import now_utc
from eventmap.utils.mailer import CODE_EXPIRY_SECONDS, send_verification_code, send_password_reset_code
from eventmap.utils.payload import NOT_AN_OBJECT_ERROR, json_object

auth_bp = Blueprint("auth", __name__)
ph = PasswordHasher()

logger = logging.getLogger(__name__)

# --- CONSTANTS FOR VALIDATION ---
PASSWORD_MIN_LENGTH = 6
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SELF_SERVICE_ROLES = ("USER", "EVENT_CREATOR")
CODE_TYPES = ("EMAIL_VERIFICATION", "PASSWORD_RESET")


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    """
    logger.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logger.info(f"[Auth] Response {response.status}")
    return response


def generate_code() -> str:
    """Six-digit numeric code, zero padded."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def issue_code(cur, email: str, code_type: str) -> str:
    """
    Store a fresh verification code that expires after CODE_EXPIRY_SECONDS.

    Returns:
        str: The generated code, to be emailed by the caller.
    """
    code = generate_code()
    expires_at = now_utc() + timedelta(seconds=CODE_EXPIRY_SECONDS)
    cur.execute(
        """
        INSERT INTO verification_codes (email, code, type, expires_at)
        VALUES (%s, %s, %s, %s);
        """,
        (email, code, code_type, expires_at),
    )
    return code


def find_valid_code(cur, email: str, code: str, code_type: str):
    """Return the newest unexpired matching code row, or None."""
    cur.execute(
        """
        SELECT code_id FROM verification_codes
        WHERE email = %s AND code = %s AND type = %s AND expires_at > NOW()
        ORDER BY created_at DESC
        LIMIT 1;
        """,
        (email, code, code_type),
    )
    return cur.fetchone()


def validate_new_password(password: str, confirmation: str):
    """
    Returns:
        str: An error message, or None if the password is acceptable.
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if password != confirmation:
        return "Passwords do not match"
    return None


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user and email them a verification code.

    Expects a JSON body with:
    - name (str)
    - email (str): Unique email address.
    - password (str): Minimum 6 characters.
    - re_enter_password (str): Must match password.
    - role (str, optional): USER (default) or EVENT_CREATOR.
    - company (str, optional)

    Returns:
        201: JSON with message and user_id.
        400: Missing fields, invalid input, or email already exists.
        500: Server-side error (hashing, database or email).
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    name: str = (data.get("name") or "").strip()
    email: str = (data.get("email") or "").strip().lower()
    password: str = data.get("password") or ""
    re_enter_password: str = data.get("re_enter_password") or ""
    role: str = (data.get("role") or "USER").upper()
    company = data.get("company") or None

    # Validate input
    if not all([name, email, password, re_enter_password]):
        return jsonify({"error": "All fields are required"}), 400

    password_error = validate_new_password(password, re_enter_password)
    if password_error:
        return jsonify({"error": password_error}), 400

    if not EMAIL_RE.match(email):
        return jsonify({"error": "Invalid email format"}), 400

    if role not in SELF_SERVICE_ROLES:
        return jsonify({"error": "Invalid role"}), 400

    # Hash password using Argon2
    try:
        pw_hash = ph.hash(password)
    except Exception:
        return jsonify({"error": "Password hashing failed"}), 500

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id FROM users WHERE email = %s;", (email,))
                if cur.fetchone():
                    return jsonify({"error": "Email already registered"}), 400

                cur.execute(
                    """
                    INSERT INTO users (name, email, password_hash, role, company)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING user_id;
                    """,
                    (name, email, pw_hash, role, company),
                )
                user_id = cur.fetchone()["user_id"]
                code = issue_code(cur, email, "EMAIL_VERIFICATION")
                conn.commit()
    except Exception as e:
        logger.error(f"Registration failed for {email}: {e}")
        return jsonify({"error": "Registration failed"}), 500

    try:
        send_verification_code(email, code)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Could not send verification code to {email}: {e}")
        return jsonify({"error": "Failed to send verification email"}), 500

    return jsonify({
        "message": "Registration successful. Please check your email for verification code.",
        "user_id": user_id
    }), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a verified user and return tokens.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: JSON with token, refresh_token and user summary.
        400: Missing credentials.
        401: Invalid credentials or unverified email.
        500: Database error.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    email: str = (data.get("email") or "").strip().lower()
    password: str = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    sql = "SELECT user_id, name, email, password_hash, role, is_verified FROM users WHERE email = %s;"

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (email,))
                user = cur.fetchone()
    except Exception as e:
        logger.error(f"Login lookup failed: {e}")
        return jsonify({"error": "Login failed"}), 500

    if not user:
        return jsonify({"error": "Invalid credentials"}), 401

    if not user["is_verified"]:
        return jsonify({"error": "Email not verified"}), 401

    # Verify password against hash
    try:
        ph.verify(user["password_hash"], password)
    except (VerificationError, InvalidHashError):
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({
        "token": create_token(user["user_id"], user["role"], user["email"]),
        "refresh_token": create_refresh_token(user["user_id"]),
        "user": {
            "user_id": user["user_id"],
            "name": user["name"],
            "email": user["email"],
            "role": user["role"],
        }
    }), 200


# --- REFRESH ---
@auth_bp.route("/refresh", methods=["POST"])
def refresh() -> Tuple[Response, int]:
    """
    Exchange a refresh token for a new access token.
    The role is re-read so promotions take effect without logging in again.

    Returns:
        200: JSON with a new token.
        400: Missing refresh_token.
        401: Invalid/expired refresh token or unknown user.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    token = data.get("refresh_token")
    if not token:
        return jsonify({"error": "refresh_token is required"}), 400

    user_id = verify_refresh_token(token)
    if user_id is None:
        return jsonify({"error": "invalid token"}), 401

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id, email, role FROM users WHERE user_id = %s;", (user_id,))
                user = cur.fetchone()
    except Exception as e:
        logger.error(f"Token refresh failed: {e}")
        return jsonify({"error": "Token refresh failed"}), 500

    if not user:
        return jsonify({"error": "invalid token"}), 401

    return jsonify({"token": create_token(user["user_id"], user["role"], user["email"])}), 200


# --- VERIFY EMAIL ---
@auth_bp.route("/verify", methods=["POST"])
def verify_email() -> Tuple[Response, int]:
    """
    Confirm an email address with the code sent at registration.

    Returns:
        200: Verified.
        400: Missing fields or invalid/expired code.
        500: Database error.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    email: str = (data.get("email") or "").strip().lower()
    code: str = str(data.get("code") or "").strip()

    if not email or not code:
        return jsonify({"error": "Email and code are required"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                verification = find_valid_code(cur, email, code, "EMAIL_VERIFICATION")
                if not verification:
                    return jsonify({"error": "Invalid or expired code"}), 400

                cur.execute(
                    "UPDATE users SET is_verified = TRUE, updated_at = CURRENT_TIMESTAMP WHERE email = %s;",
                    (email,),
                )
                cur.execute("DELETE FROM verification_codes WHERE code_id = %s;", (verification["code_id"],))
                conn.commit()
    except Exception as e:
        logger.error(f"Email verification failed for {email}: {e}")
        return jsonify({"error": "Verification failed"}), 500

    return jsonify({"message": "Email verified successfully"}), 200


# --- FORGOT PASSWORD ---
@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password() -> Tuple[Response, int]:
    """
    Email a password reset code to a registered address.

    Returns:
        200: Code sent.
        400: Missing email.
        404: Email not registered.
        500: Database or email error.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    email: str = (data.get("email") or "").strip().lower()

    if not email:
        return jsonify({"error": "Email is required"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT user_id FROM users WHERE email = %s;", (email,))
                if not cur.fetchone():
                    return jsonify({"error": "Email not registered"}), 404

                code = issue_code(cur, email, "PASSWORD_RESET")
                conn.commit()
    except Exception as e:
        logger.error(f"Forgot password failed for {email}: {e}")
        return jsonify({"error": "Failed to create reset code"}), 500

    try:
        send_password_reset_code(email, code)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Could not send reset code to {email}: {e}")
        return jsonify({"error": "Failed to send reset email"}), 500

    return jsonify({"message": "Password reset code sent to your email"}), 200


# --- RESET PASSWORD ---
@auth_bp.route("/reset-password", methods=["POST"])
def reset_password() -> Tuple[Response, int]:
    """
    Set a new password using a reset code.

    Expects JSON: email, code, new_password, confirm_password.

    Returns:
        200: Password updated.
        400: Missing/invalid fields or invalid/expired code.
        500: Hashing or database error.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    email: str = (data.get("email") or "").strip().lower()
    code: str = str(data.get("code") or "").strip()
    new_password: str = data.get("new_password") or ""
    confirm_password: str = data.get("confirm_password") or ""

    if not all([email, code, new_password, confirm_password]):
        return jsonify({"error": "All fields are required"}), 400

    password_error = validate_new_password(new_password, confirm_password)
    if password_error:
        return jsonify({"error": password_error}), 400

    try:
        pw_hash = ph.hash(new_password)
    except Exception:
        return jsonify({"error": "Password hashing failed"}), 500

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                verification = find_valid_code(cur, email, code, "PASSWORD_RESET")
                if not verification:
                    return jsonify({"error": "Invalid or expired code"}), 400

                cur.execute(
                    "UPDATE users SET password_hash = %s, updated_at = CURRENT_TIMESTAMP WHERE email = %s;",
                    (pw_hash, email),
                )
                cur.execute("DELETE FROM verification_codes WHERE code_id = %s;", (verification["code_id"],))
                conn.commit()
    except Exception as e:
        logger.error(f"Password reset failed for {email}: {e}")
        return jsonify({"error": "Password reset failed"}), 500

    return jsonify({"message": "Password reset successfully"}), 200


# --- RESEND CODE ---
@auth_bp.route("/resend-code", methods=["POST"])
def resend_code() -> Tuple[Response, int]:
    """
    Issue a fresh verification or password reset code.

    Expects JSON: email, type (EMAIL_VERIFICATION | PASSWORD_RESET).

    Returns:
        200: Code resent.
        400: Missing fields or unknown type.
        500: Database or email error.
    """
    data = json_object()
    if data is None:
        return jsonify({"error": NOT_AN_OBJECT_ERROR}), 400
    email: str = (data.get("email") or "").strip().lower()
    code_type: str = (data.get("type") or "").strip().upper()

    if not email or not code_type:
        return jsonify({"error": "Email and type are required"}), 400

    if code_type not in CODE_TYPES:
        return jsonify({"error": f"type must be one of: {', '.join(CODE_TYPES)}"}), 400

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                code = issue_code(cur, email, code_type)
                conn.commit()
    except Exception as e:
        logger.error(f"Resend code failed for {email}: {e}")
        return jsonify({"error": "Failed to resend code"}), 500

    try:
        if code_type == "EMAIL_VERIFICATION":
            send_verification_code(email, code)
        else:
            send_password_reset_code(email, code)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Could not resend code to {email}: {e}")
        return jsonify({"error": "Failed to send email"}), 500

    return jsonify({"message": "Code resent successfully"}), 200
