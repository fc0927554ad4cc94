"""
Address resolution for event locations.

Turns a free-text Vietnamese address into coordinates using the Mapbox
geocoding API. Results are ranked with a small scoring heuristic:

    score = 10 * house number found
          +  5 * street name found
          +  2 * provider relevance
          +  proximity bonus (only when anchored to a landmark)

Three strategies are tried in order and the first one that yields a
result wins:

1. `address`-typed query, scored.
2. Landmark anchored: if the text mentions a university/school/hospital,
   find that POI first, then search addresses near it.
3. Unrestricted query, preferring street/address/poi features.

Failures never propagate: any network or parse error is logged and the
caller receives None (the event is stored without a map pin).
"""

import logging
import math
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MAPBOX_ACCESS_TOKEN = os.getenv("MAPBOX_ACCESS_TOKEN")
MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
GEOCODING_TIMEOUT = float(os.getenv("GEOCODING_TIMEOUT", 10))
COUNTRY_CODE = "VN"

HOUSE_NUMBER_WEIGHT = 10
STREET_NAME_WEIGHT = 5
RELEVANCE_WEIGHT = 2
PROXIMITY_WEIGHT = 5
PROXIMITY_EPSILON = 0.0001

LANDMARK_KEYWORDS = ("đại học", "university", "trường", "school", "bệnh viện", "hospital")
FALLBACK_PLACE_TYPES = ("street", "address", "poi")

HOUSE_NUMBER_RE = re.compile(r"^\d+")
STREET_KEYWORD_RE = re.compile(r"(?:đường|street|phố)\s+([^,]+)", re.IGNORECASE)
STREET_AFTER_NUMBER_RE = re.compile(r"^\s*\d+\S*\s+([^,]+)")

# Errors that mean "this strategy produced nothing usable"
GEOCODING_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError, IndexError)


@dataclass
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class ParsedAddress:
    """Tokens pulled out of the user's free-text address."""
    house_number: Optional[str] = None
    street_name: Optional[str] = None


@dataclass
class Candidate:
    """A single geocoder result."""
    text: str
    longitude: float
    latitude: float
    place_types: List[str] = field(default_factory=list)
    relevance: float = 0.0
    address_number: Optional[str] = None

    @classmethod
    def from_feature(cls, feature: Dict[str, Any]) -> "Candidate":
        longitude, latitude = feature["center"]
        return cls(
            text=feature.get("place_name") or feature.get("text") or "",
            longitude=float(longitude),
            latitude=float(latitude),
            place_types=list(feature.get("place_type") or []),
            relevance=float(feature.get("relevance") or 0.0),
            address_number=feature.get("address"),
        )

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


def parse_address(address: str) -> ParsedAddress:
    """
    Extract the house number and street name from a Vietnamese address.

    The street name comes from a `đường`/`street`/`phố` phrase when one is
    present, otherwise from the text between the house number and the
    first comma ("227 Nguyễn Văn Cừ, Quận 5" -> "Nguyễn Văn Cừ").
    """
    address = (address or "").strip()

    number_match = HOUSE_NUMBER_RE.match(address)
    house_number = number_match.group(0) if number_match else None

    street_name = None
    keyword_match = STREET_KEYWORD_RE.search(address)
    if keyword_match:
        street_name = keyword_match.group(1).strip()
    elif house_number:
        after_number = STREET_AFTER_NUMBER_RE.match(address)
        if after_number:
            street_name = after_number.group(1).strip()

    return ParsedAddress(house_number=house_number, street_name=street_name or None)


def has_landmark(address: str) -> bool:
    lowered = (address or "").lower()
    return any(keyword in lowered for keyword in LANDMARK_KEYWORDS)


def build_query_text(address: str, region_name: Optional[str] = None) -> str:
    full_address = address.strip()
    if region_name:
        return f"{full_address}, {region_name}, Vietnam"
    return f"{full_address}, Vietnam"


def _house_number_matches(candidate: Candidate, house_number: str) -> bool:
    if candidate.address_number and candidate.address_number == house_number:
        return True
    return house_number in candidate.text


def score_candidate(candidate: Candidate, parsed: ParsedAddress,
                    landmark: Optional[Tuple[float, float]] = None) -> float:
    """
    Score a geocoder candidate against the parsed address.

    Args:
        candidate (Candidate): Result to score.
        parsed (ParsedAddress): Tokens from the user's address.
        landmark (tuple, optional): (longitude, latitude) of an anchoring POI.

    Returns:
        float: Unbounded score; higher is better.
    """
    score = 0.0

    if parsed.house_number and _house_number_matches(candidate, parsed.house_number):
        score += HOUSE_NUMBER_WEIGHT

    if parsed.street_name and parsed.street_name.lower() in candidate.text.lower():
        score += STREET_NAME_WEIGHT

    score += candidate.relevance * RELEVANCE_WEIGHT

    if landmark is not None:
        distance = math.hypot(candidate.longitude - landmark[0], candidate.latitude - landmark[1])
        score += (1 / (distance + PROXIMITY_EPSILON)) * PROXIMITY_WEIGHT

    return score


def pick_best_candidate(candidates: List[Candidate], parsed: ParsedAddress,
                        landmark: Optional[Tuple[float, float]] = None) -> Optional[Candidate]:
    """
    Return the highest scoring `address` candidate.

    Ties keep the earlier candidate. A candidate must score above zero.
    """
    best = None
    best_score = 0.0

    for candidate in candidates:
        if "address" not in candidate.place_types:
            continue
        score = score_candidate(candidate, parsed, landmark)
        if score > best_score:
            best, best_score = candidate, score

    return best


def search_places(query: str, **params: Any) -> List[Candidate]:
    """
    Call the Mapbox forward geocoding endpoint.

    Raises:
        requests.RequestException: Network or HTTP failure.
        ValueError/KeyError: Malformed response body.
    """
    url = f"{MAPBOX_GEOCODING_URL}/{quote(query, safe='')}.json"
    query_params = {"access_token": MAPBOX_ACCESS_TOKEN, "country": COUNTRY_CODE}
    query_params.update(params)

    response = requests.get(url, params=query_params, timeout=GEOCODING_TIMEOUT)
    response.raise_for_status()

    features = response.json().get("features") or []
    return [Candidate.from_feature(feature) for feature in features]


def _geocoding_enabled() -> bool:
    if not MAPBOX_ACCESS_TOKEN:
        logger.warning("Mapbox access token not configured. Geocoding disabled.")
        return False
    return True


def _by_address(query: str, parsed: ParsedAddress) -> Optional[Candidate]:
    candidates = search_places(query, types="address", limit=10)
    return pick_best_candidate(candidates, parsed)


def _by_landmark(query: str, parsed: ParsedAddress) -> Optional[Candidate]:
    landmarks = search_places(query, types="poi", limit=5)
    if not landmarks:
        return None

    landmark = landmarks[0]
    nearby = search_places(
        query,
        types="address",
        proximity=f"{landmark.longitude},{landmark.latitude}",
        limit=10,
    )
    if not nearby:
        return None

    best = pick_best_candidate(nearby, parsed, landmark=(landmark.longitude, landmark.latitude))
    # No usable address near the landmark: the landmark itself is close enough
    return best or landmark


def _unrestricted(query: str) -> Optional[Candidate]:
    candidates = search_places(query, limit=5)
    if not candidates:
        return None
    for candidate in candidates:
        if any(t in candidate.place_types for t in FALLBACK_PLACE_TYPES):
            return candidate
    return candidates[0]


def geocode_address(address: str, region_name: Optional[str] = None) -> Optional[Coordinates]:
    """
    Resolve a free-text address to coordinates.

    Args:
        address (str): Address as typed by the event creator.
        region_name (str, optional): Province/city name used as a hint.

    Returns:
        Coordinates: Best match, or None if nothing usable was found.
    """
    if not address or not address.strip():
        return None
    if not _geocoding_enabled():
        return None

    query = build_query_text(address, region_name)
    parsed = parse_address(address)

    try:
        best = _by_address(query, parsed)
        if best:
            logger.info(f"Geocoded address: {address} -> {best.text}")
            return best.coordinates
    except GEOCODING_ERRORS as e:
        logger.warning(f"Address geocoding failed, trying fallback: {e}")

    if has_landmark(address):
        try:
            best = _by_landmark(query, parsed)
            if best:
                logger.info(f"Geocoded address with landmark: {address} -> {best.text}")
                return best.coordinates
        except GEOCODING_ERRORS as e:
            logger.warning(f"Landmark geocoding failed: {e}")

    try:
        best = _unrestricted(query)
        if best:
            logger.info(f"Geocoded address (fallback): {address} -> {best.text}")
            return best.coordinates
    except GEOCODING_ERRORS as e:
        logger.warning(f"Fallback geocoding failed: {e}")

    return None


def geocode_region(region_name: str) -> Optional[Coordinates]:
    """
    Resolve a province/city name to a map center.
    """
    if not region_name or not _geocoding_enabled():
        return None

    try:
        candidates = search_places(f"{region_name}, Vietnam", limit=1)
    except GEOCODING_ERRORS as e:
        logger.warning(f"Region geocoding failed for {region_name}: {e}")
        return None

    return candidates[0].coordinates if candidates else None
