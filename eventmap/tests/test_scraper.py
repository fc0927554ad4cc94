import pytest
import requests
from datetime import datetime
from unittest.mock import MagicMock

from eventmap.auth_service.utils import create_token
from eventmap.utils import scraper
from eventmap.utils.dates import APP_TIMEZONE
from eventmap.utils.scraper import (
    ScrapedEvent,
    image_to_base64,
    parse_event_cards,
    parse_event_date,
    save_scraped_events,
    scrape_source,
)

LISTING_HTML = """
<html><body>
  <div class="event-item">
    <h3 class="title">Lễ hội Áo dài</h3>
    <p class="description">Trình diễn áo dài truyền thống</p>
    <span class="location">Nhà Văn hóa Thanh niên, Quận 1</span>
    <span class="date">19:30 15/03/2025</span>
    <img src="/images/aodai.jpg">
  </div>
  <div class="event-item">
    <h3 class="title">No venue</h3>
  </div>
  <div class="event-item">
    <h3 class="title">Hội chợ sách</h3>
    <span class="venue">Đường sách Nguyễn Văn Bình</span>
    <img src="https://cdn.example.com/book.png">
  </div>
</body></html>
"""


def scraped(name="Lễ hội Áo dài", date_text="15/03/2025 19:30", image_url=None):
    return ScrapedEvent(
        name=name,
        description="Trình diễn áo dài truyền thống",
        location="Nhà Văn hóa Thanh niên, Quận 1",
        date_text=date_text,
        image_url=image_url,
        source="sansukien",
    )


# --- PARSING ---
def test_parse_event_cards():
    events = parse_event_cards(LISTING_HTML, "sansukien")

    assert [e.name for e in events] == ["Lễ hội Áo dài", "Hội chợ sách"]

    first = events[0]
    assert first.description == "Trình diễn áo dài truyền thống"
    assert first.location == "Nhà Văn hóa Thanh niên, Quận 1"
    assert first.date_text == "19:30 15/03/2025"
    assert first.image_url == "https://sansukien.com/images/aodai.jpg"
    assert first.source == "sansukien"

    # Missing description falls back to the name
    assert events[1].description == "Hội chợ sách"
    assert events[1].image_url == "https://cdn.example.com/book.png"


@pytest.mark.parametrize("text, expected", [
    ("15/03/2025", datetime(2025, 3, 15, 0, 0, tzinfo=APP_TIMEZONE)),
    ("15/03/2025 19:30", datetime(2025, 3, 15, 19, 30, tzinfo=APP_TIMEZONE)),
    ("19:30 15/03/2025", datetime(2025, 3, 15, 19, 30, tzinfo=APP_TIMEZONE)),
    ("Thứ Bảy, 5/4/2025", datetime(2025, 4, 5, 0, 0, tzinfo=APP_TIMEZONE)),
    ("2025-03-15T19:30:00", datetime(2025, 3, 15, 19, 30, tzinfo=APP_TIMEZONE)),
])
def test_parse_event_date(text, expected):
    assert parse_event_date(text) == expected


@pytest.mark.parametrize("text", ["", None, "Sắp diễn ra", "32/13/2025"])
def test_parse_event_date_unparseable(text):
    assert parse_event_date(text) is None


def test_parse_event_date_keeps_explicit_offset():
    parsed = parse_event_date("2025-03-15T12:30:00Z")
    assert parsed.utcoffset().total_seconds() == 0
    assert parsed.hour == 12


# --- FETCHING ---
def test_scrape_source(mocker):
    response = MagicMock(text=LISTING_HTML)
    mock_get = mocker.patch("eventmap.utils.scraper.requests.get", return_value=response)

    events = scrape_source("sansukien")

    assert len(events) == 2
    assert mock_get.call_args[0][0] == "https://sansukien.com/"
    assert mock_get.call_args[1]["headers"] == scraper.HEADERS


def test_scrape_source_network_error(mocker):
    mocker.patch("eventmap.utils.scraper.requests.get", side_effect=requests.ConnectionError("down"))
    assert scrape_source("ticketbox") == []


def test_image_to_base64(mocker):
    response = MagicMock(content=b"\x89PNG", headers={"Content-Type": "image/png; charset=binary"})
    mocker.patch("eventmap.utils.scraper.requests.get", return_value=response)

    assert image_to_base64("https://cdn.example.com/a.png") == "data:image/png;base64,iVBORw=="


def test_image_to_base64_skips_missing_and_inline():
    assert image_to_base64(None) is None
    assert image_to_base64("data:image/png;base64,AAAA") is None


# --- SAVING ---
def test_save_scraped_events(mock_db, mocker):
    mock_conn, mock_cursor = mock_db
    mocker.patch("eventmap.utils.scraper.image_to_base64", return_value=None)

    mock_cursor.fetchone.side_effect = [
        {"category_id": 7},  # default category exists
        {"region_id": 1},  # default region exists
        {"user_id": 1},  # first admin
        None,  # first event is new
        {"event_id": 10},  # INSERT RETURNING
        {"event_id": 3},  # second event already stored
    ]

    result = save_scraped_events([scraped(), scraped(name="Đã có")])

    assert result == {"saved": 1, "skipped": 1}

    insert_args = next(
        c[0][1] for c in mock_cursor.execute.call_args_list if "INSERT INTO events" in c[0][0]
    )
    assert insert_args[0] == "Lễ hội Áo dài"
    assert insert_args[6] == datetime(2025, 3, 15, 19, 30, tzinfo=APP_TIMEZONE)
    assert insert_args[7] - insert_args[6] == scraper.DEFAULT_EVENT_DURATION
    assert insert_args[9:] == (7, 1, 1, "sansukien")


def test_save_scraped_events_creates_defaults(mock_db, mocker):
    _, mock_cursor = mock_db
    mock_cursor.fetchone.side_effect = [
        None, {"category_id": 9},
        None, {"region_id": 2},
        None,  # no admin yet
    ]

    result = save_scraped_events([])

    assert result == {"saved": 0, "skipped": 0}
    executed = [c[0] for c in mock_cursor.execute.call_args_list]
    assert executed[1][1] == ("Khác", "Các sự kiện khác")
    assert executed[3][1] == ("Thành phố Hồ Chí Minh", "HCM")


def test_save_scraped_events_rolls_back_bad_event(mock_db, mocker):
    mock_conn, mock_cursor = mock_db
    mocker.patch("eventmap.utils.scraper.image_to_base64", return_value=None)
    mocker.patch("eventmap.utils.scraper.create_event", side_effect=[Exception("bad row"), 11])
    mock_cursor.fetchone.side_effect = [{"category_id": 7}, {"region_id": 1}, None, None, None]

    result = save_scraped_events([scraped(name="Broken"), scraped(name="Fine")])

    assert result == {"saved": 1, "skipped": 1}
    mock_conn.rollback.assert_called_once()


# --- ROUTE ---
def test_scrape_route(client, login_as, mocker):
    login_as("scraper_service", user_id=1, role="ADMIN")
    mocker.patch("eventmap.scraper_service.routes.scrape_all_events", return_value={"saved": 3, "skipped": 2})

    response = client.post("/api/scraper/scrape")

    assert response.status_code == 200
    assert response.get_json() == {"message": "Scraping completed", "result": {"saved": 3, "skipped": 2}}


def test_scrape_route_failure(client, login_as, mocker):
    login_as("scraper_service", user_id=1, role="ADMIN")
    mocker.patch("eventmap.scraper_service.routes.scrape_all_events", side_effect=Exception("db down"))

    response = client.post("/api/scraper/scrape")
    assert response.status_code == 500


def test_scrape_route_admin_only(client):
    token = create_token(2, "EVENT_CREATOR")
    response = client.post("/api/scraper/scrape", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
