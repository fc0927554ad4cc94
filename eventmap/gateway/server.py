"""
API gateway: mounts every service blueprint under /api.
This is the entrypoint for both development and deployment.
"""

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")

CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:3000")


def create_app() -> Flask:
    """
    Application factory for creating the Flask app.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    # Large enough for base64 event images and avatars
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024

    CORS(app, resources={
        r"/api/*": {
            "origins": [origin.strip() for origin in CORS_ORIGIN.split(",")],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from eventmap.auth_service.routes import auth_bp
    from eventmap.events_service.routes import events_bp
    from eventmap.users_service.routes import users_bp
    from eventmap.admin_service.routes import admin_bp
    from eventmap.notifications_service.routes import notifications_bp
    from eventmap.catalog_service.routes import categories_bp, regions_bp
    from eventmap.scraper_service.routes import scraper_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(categories_bp, url_prefix="/api/categories")
    app.register_blueprint(regions_bp, url_prefix="/api/regions")
    app.register_blueprint(scraper_bp, url_prefix="/api/scraper")

    logging.info("All blueprints registered successfully.")

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/api/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok", "message": "Event Map API is running"}), 200

    # --- JSON ERRORS ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logging.exception(f"Unhandled error: {e}")
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=os.getenv("FLASK_DEBUG") == "1")
