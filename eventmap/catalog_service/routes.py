"""
Reference data routes: event categories and Vietnamese regions.
Both lists are public.
"""

import logging
from typing import Tuple

from flask import Blueprint, jsonify, Response

from eventmap.database.db_connection import get_db
from eventmap.utils.geocoding import geocode_region
from eventmap.utils.serialization import serialize_rows

categories_bp = Blueprint("categories", __name__)
regions_bp = Blueprint("regions", __name__)

logger = logging.getLogger(__name__)


@categories_bp.route("/", methods=["GET"])
def list_categories() -> Tuple[Response, int]:
    """
    All event categories ordered by name.

    Returns:
        200: List of {category_id, name, description}.
        500: Database error.
    """
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT category_id, name, description FROM event_categories ORDER BY name;")
                categories = serialize_rows(cur.fetchall())
    except Exception as e:
        logger.error(f"Database error listing categories: {e}")
        return jsonify({"error": "Failed to retrieve categories"}), 500

    return jsonify(categories), 200


@regions_bp.route("/", methods=["GET"])
def list_regions() -> Tuple[Response, int]:
    """
    All regions ordered by name.

    Returns:
        200: List of {region_id, name, code}.
        500: Database error.
    """
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT region_id, name, code FROM regions ORDER BY name;")
                regions = serialize_rows(cur.fetchall())
    except Exception as e:
        logger.error(f"Database error listing regions: {e}")
        return jsonify({"error": "Failed to retrieve regions"}), 500

    return jsonify(regions), 200


@regions_bp.route("/<int:region_id>/location", methods=["GET"])
def get_region_location(region_id: int) -> Tuple[Response, int]:
    """
    Map center for a region, used to focus the map on a province.

    Returns:
        200: {region_id, name, latitude, longitude}
        404: Unknown region, or the geocoder found nothing.
        500: Database error.
    """
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT region_id, name FROM regions WHERE region_id = %s;", (region_id,))
                region = cur.fetchone()
    except Exception as e:
        logger.error(f"Database error fetching region {region_id}: {e}")
        return jsonify({"error": "Failed to retrieve region"}), 500

    if not region:
        return jsonify({"error": "Region not found"}), 404

    coordinates = geocode_region(region["name"])
    if not coordinates:
        return jsonify({"error": "Region location not available"}), 404

    return jsonify({
        "region_id": region["region_id"],
        "name": region["name"],
        "latitude": coordinates.latitude,
        "longitude": coordinates.longitude
    }), 200
