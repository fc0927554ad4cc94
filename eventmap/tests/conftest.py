import os

# Must be set before any eventmap module is imported
os.environ.setdefault("JWT_SECRET", "test_secret_for_the_eventmap_test_suite_0123456789")
os.environ.setdefault("JWT_REFRESH_SECRET", "test_refresh_secret_for_the_eventmap_suite_98765")

import pytest
from unittest.mock import MagicMock
from flask import Flask

from eventmap.auth_service.routes import auth_bp
from eventmap.events_service.routes import events_bp
from eventmap.users_service.routes import users_bp
from eventmap.admin_service.routes import admin_bp
from eventmap.notifications_service.routes import notifications_bp
from eventmap.catalog_service.routes import categories_bp, regions_bp
from eventmap.scraper_service.routes import scraper_bp

# Every module that opens its own connection
DB_MODULES = [
    "eventmap.auth_service.routes",
    "eventmap.events_service.routes",
    "eventmap.users_service.routes",
    "eventmap.admin_service.routes",
    "eventmap.notifications_service.routes",
    "eventmap.catalog_service.routes",
    "eventmap.utils.scraper",
    "eventmap.jobs.event_reminders",
]


@pytest.fixture
def app():
    app = Flask(__name__)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")
    app.register_blueprint(categories_bp, url_prefix="/api/categories")
    app.register_blueprint(regions_bp, url_prefix="/api/regions")
    app.register_blueprint(scraper_bp, url_prefix="/api/scraper")

    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def offline(mocker):
    """
    Keep tests off the network even when a local .env configures
    Mapbox or SMTP.
    """
    mocker.patch("eventmap.utils.geocoding.MAPBOX_ACCESS_TOKEN", None)
    mocker.patch("eventmap.utils.mailer.SMTP_HOST", None)


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the database connection and cursor for every module using get_db.
    """
    mock_conn = MagicMock()
    mock_cursor = MagicMock()

    # Setup the context managers for connection and cursor
    mock_conn.__enter__.return_value = mock_conn
    mock_conn.__exit__.return_value = None
    mock_cursor.__enter__.return_value = mock_cursor
    mock_cursor.__exit__.return_value = None
    mock_cursor.rowcount = 1

    # Connect cursor to connection
    mock_conn.cursor.return_value = mock_cursor

    for module in DB_MODULES:
        mocker.patch(f"{module}.get_db", return_value=mock_conn)

    return mock_conn, mock_cursor


@pytest.fixture
def login_as(mocker):
    """
    Returns a helper that patches verify_token_from_request in a service
    routes module, e.g. login_as("events_service", user_id=2, role="ADMIN").
    """
    def _login(module, user_id=1, role="USER"):
        return mocker.patch(
            f"eventmap.{module}.routes.verify_token_from_request",
            return_value=(user_id, role, None, None),
        )
    return _login
