"""
Scrapers for public Vietnamese event listing sites.

Each source is a listing page whose event cards are picked out with CSS
selectors. Cards become ScrapedEvent records, which save_scraped_events()
turns into rows in the events table under the "Khác" category and the
Ho Chi Minh City region.
"""

import base64
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from eventmap.database.db_connection import get_db
from eventmap.events_service.service import create_event
from eventmap.utils.dates import APP_TIMEZONE, now_utc, parse_dt

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}
REQUEST_TIMEOUT = 15
DEFAULT_EVENT_DURATION = timedelta(hours=2)

DEFAULT_CATEGORY = ("Khác", "Các sự kiện khác")
DEFAULT_REGION = ("Thành phố Hồ Chí Minh", "HCM")

DESCRIPTION_SELECTOR = ".description, .content, p"
LOCATION_SELECTOR = ".location, .venue, .address"
DATE_SELECTOR = ".date, .time, .datetime"

SOURCES = {
    "sansukien": {
        "url": "https://sansukien.com/",
        "card": ".event-item, .event-card, article",
        "title": "h2, h3, .title, .event-title",
    },
    "ticketbox": {
        "url": "https://ticketbox.vn/",
        "card": ".event, .event-item, .ticket-item",
        "title": "h2, h3, .title, .event-name",
    },
}

TIME_THEN_DATE_RE = re.compile(r"(\d{1,2}):(\d{2})\s+(\d{1,2})/(\d{1,2})/(\d{4})")
DATE_THEN_TIME_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{2}))?")


@dataclass
class ScrapedEvent:
    name: str
    description: str
    location: str
    date_text: str
    image_url: Optional[str]
    source: str


def _first_text(card, selector: str) -> str:
    element = card.select_one(selector)
    return element.get_text(strip=True) if element else ""


# --- PARSING ---
def parse_event_cards(html: str, source: str) -> List[ScrapedEvent]:
    """
    Extract events from a listing page.

    Cards without a name or a location are dropped.

    Args:
        html (str): Page markup.
        source (str): Key into SOURCES.

    Returns:
        list: ScrapedEvent records in page order.
    """
    config = SOURCES[source]
    soup = BeautifulSoup(html, "html.parser")
    events = []

    for card in soup.select(config["card"]):
        name = _first_text(card, config["title"])
        location = _first_text(card, LOCATION_SELECTOR)
        if not name or not location:
            continue

        image = card.select_one("img")
        image_url = image.get("src") if image else None
        if image_url:
            image_url = urljoin(config["url"], image_url)

        events.append(ScrapedEvent(
            name=name,
            description=_first_text(card, DESCRIPTION_SELECTOR) or name,
            location=location,
            date_text=_first_text(card, DATE_SELECTOR),
            image_url=image_url,
            source=source,
        ))

    return events


def parse_event_date(text: Optional[str]) -> Optional[datetime]:
    """
    Parse the date text found on a listing card.

    Accepted forms: ISO-8601, "dd/mm/yyyy", "dd/mm/yyyy hh:mm" and
    "hh:mm dd/mm/yyyy". Times without an offset are local to APP_TIMEZONE.

    Returns:
        datetime: Timezone-aware start, or None if nothing matched.
    """
    text = (text or "").strip()
    if not text:
        return None

    parsed = parse_dt(text)
    if parsed:
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=APP_TIMEZONE)

    try:
        match = TIME_THEN_DATE_RE.search(text)
        if match:
            hour, minute, day, month, year = (int(part) for part in match.groups())
            return datetime(year, month, day, hour, minute, tzinfo=APP_TIMEZONE)

        match = DATE_THEN_TIME_RE.search(text)
        if match:
            day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
            hour = int(match.group(4)) if match.group(4) else 0
            minute = int(match.group(5)) if match.group(5) else 0
            return datetime(year, month, day, hour, minute, tzinfo=APP_TIMEZONE)
    except ValueError:
        logger.debug(f"Unparseable event date: {text}")

    return None


# --- FETCHING ---
def scrape_source(source: str) -> List[ScrapedEvent]:
    """Fetch and parse one listing page. Network errors yield an empty list."""
    url = SOURCES[source]["url"]
    try:
        response = requests.get(url, headers=HEADERS, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error scraping {url}: {e}")
        return []

    events = parse_event_cards(response.text, source)
    logger.info(f"Found {len(events)} events on {source}")
    return events


def scrape_sansukien() -> List[ScrapedEvent]:
    return scrape_source("sansukien")


def scrape_ticketbox() -> List[ScrapedEvent]:
    return scrape_source("ticketbox")


def image_to_base64(url: Optional[str]) -> Optional[str]:
    """
    Download an image and inline it as a data URL.

    Returns:
        str: "data:<type>;base64,..." or None if the URL is missing, already
        inline, or the download failed.
    """
    if not url or url.startswith("data:"):
        return None

    try:
        response = requests.get(url, headers=HEADERS, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Error downloading image {url}: {e}")
        return None

    content_type = (response.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip()
    encoded = base64.b64encode(response.content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


# --- SAVING ---
def _ensure_default_category(cur) -> int:
    name, description = DEFAULT_CATEGORY
    cur.execute("SELECT category_id FROM event_categories WHERE name = %s;", (name,))
    row = cur.fetchone()
    if row:
        return row["category_id"]
    cur.execute(
        "INSERT INTO event_categories (name, description) VALUES (%s, %s) RETURNING category_id;",
        (name, description),
    )
    return cur.fetchone()["category_id"]


def _ensure_default_region(cur) -> int:
    name, code = DEFAULT_REGION
    cur.execute("SELECT region_id FROM regions WHERE code = %s;", (code,))
    row = cur.fetchone()
    if row:
        return row["region_id"]
    cur.execute(
        "INSERT INTO regions (name, code) VALUES (%s, %s) RETURNING region_id;",
        (name, code),
    )
    return cur.fetchone()["region_id"]


def _first_admin_id(cur) -> Optional[int]:
    cur.execute("SELECT user_id FROM users WHERE role = 'ADMIN' ORDER BY user_id LIMIT 1;")
    row = cur.fetchone()
    return row["user_id"] if row else None


def save_scraped_events(events: List[ScrapedEvent]) -> Dict[str, int]:
    """
    Persist scraped events, skipping ones already stored for the same source.

    Each event is committed on its own so one bad record does not discard
    the rest; a failing event is rolled back and counted as skipped.

    Returns:
        dict: {"saved": int, "skipped": int}
    """
    saved = 0
    skipped = 0

    with get_db() as conn:
        with conn.cursor() as cur:
            category_id = _ensure_default_category(cur)
            region_id = _ensure_default_region(cur)
            creator_id = _first_admin_id(cur)
            conn.commit()

            for event in events:
                try:
                    cur.execute(
                        "SELECT event_id FROM events WHERE name = %s AND source = %s;",
                        (event.name, event.source),
                    )
                    if cur.fetchone():
                        skipped += 1
                        continue

                    start_time = parse_event_date(event.date_text) or now_utc()
                    fields = {
                        "name": event.name,
                        "description": event.description or event.name,
                        "location": event.location,
                        "image": image_to_base64(event.image_url),
                        "start_time": start_time,
                        "end_time": start_time + DEFAULT_EVENT_DURATION,
                        "category_id": category_id,
                        "region_id": region_id,
                    }
                    create_event(cur, fields, creator_id, source=event.source, region_hint=False)
                    conn.commit()
                    saved += 1
                except Exception as e:
                    conn.rollback()
                    logger.error(f"Error saving scraped event '{event.name}': {e}")
                    skipped += 1

    logger.info(f"Scraped events saved: {saved}, skipped: {skipped}")
    return {"saved": saved, "skipped": skipped}


def scrape_all_events() -> Dict[str, int]:
    """Run every scraper and save the results."""
    logger.info("Starting event scraping...")

    events = scrape_sansukien() + scrape_ticketbox()
    logger.info(f"Scraped {len(events)} events total")

    result = save_scraped_events(events)
    logger.info(f"Scraping completed: {result}")
    return result
