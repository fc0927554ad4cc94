"""
Manual trigger for the event scrapers (ADMIN only).
The same work runs on a schedule via `python -m eventmap.jobs.scrape_events`.
"""

import logging
from typing import Tuple

from flask import Blueprint, jsonify, Response

from eventmap.auth_service.utils import verify_token_from_request
from eventmap.utils.scraper import scrape_all_events

scraper_bp = Blueprint("scraper", __name__)

logger = logging.getLogger(__name__)


@scraper_bp.route("/scrape", methods=["POST"])
def scrape() -> Tuple[Response, int]:
    """
    Run all scrapers synchronously and save new events.

    Returns:
        200: {"message": str, "result": {"saved": int, "skipped": int}}
        401/403: Auth error.
        500: Scraping failed.
    """
    user_id, _, err, code = verify_token_from_request(["ADMIN"])
    if err:
        return err, code

    logger.info(f"Scrape triggered by admin {user_id}")
    try:
        result = scrape_all_events()
    except Exception as e:
        logger.error(f"Scraping error: {e}")
        return jsonify({"error": "Scraping failed"}), 500

    return jsonify({
        "message": "Scraping completed",
        "result": result
    }), 200
