from datetime import datetime, timezone

from eventmap.auth_service.utils import create_token
from eventmap.tests.factories import event_row

USER_ROW = {
    "user_id": 4,
    "name": "Lan",
    "email": "lan@example.com",
    "role": "EVENT_CREATOR",
    "company": None,
    "gender": None,
    "language": None,
    "country": None,
    "timezone": None,
    "avatar": None,
    "is_verified": True,
    "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    "updated_at": datetime(2025, 2, 1, tzinfo=timezone.utc),
}


def test_admin_routes_reject_non_admins(client):
    token = create_token(1, "EVENT_CREATOR")
    headers = {"Authorization": f"Bearer {token}"}

    assert client.get("/api/admin/stats", headers=headers).status_code == 403
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.delete("/api/admin/events/1", headers=headers).status_code == 403


# --- STATS ---
def test_stats(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")

    mock_cursor.fetchone.side_effect = [{"total": 12}, {"total": 30}, {"total": 2}, {"total": 3}]
    mock_cursor.fetchall.return_value = [{"month": "2025-01", "count": 10}, {"month": "2025-02", "count": 20}]

    response = client.get("/api/admin/stats")

    assert response.status_code == 200
    assert response.get_json() == {
        "totalUsers": 12,
        "totalEvents": 30,
        "eventsToday": 2,
        "newUsers": 3,
        "eventsByMonth": [{"month": "2025-01", "count": 10}, {"month": "2025-02", "count": 20}],
    }

    today_start, tomorrow_start = mock_cursor.execute.call_args_list[2][0][1]
    assert (tomorrow_start - today_start).days == 1
    assert today_start.hour == 0
    assert mock_cursor.execute.call_args_list[4][0][1][0] == "Asia/Ho_Chi_Minh"


# --- USERS ---
def test_list_users_search_and_role(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = {"total": 1}
    mock_cursor.fetchall.return_value = [USER_ROW]

    response = client.get("/api/admin/users?search=lan&role=event_creator")

    assert response.status_code == 200
    assert response.get_json()["data"][0]["email"] == "lan@example.com"
    count_sql, count_params = mock_cursor.execute.call_args_list[0][0]
    assert "name ILIKE %s OR email ILIKE %s" in count_sql
    assert count_params == ["%lan%", "%lan%", "EVENT_CREATOR"]


def test_get_user_not_found(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = None

    response = client.get("/api/admin/users/99")
    assert response.status_code == 404


def test_update_user_role_approves_request_and_notifies(client, mock_db, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", user_id=1, role="ADMIN")
    mock_cursor.fetchone.side_effect = [{"user_id": 4}, USER_ROW]

    response = client.put("/api/admin/users/4", json={"role": "event_creator"})

    assert response.status_code == 200
    assert response.get_json()["role"] == "EVENT_CREATOR"

    executed = mock_cursor.execute.call_args_list
    approve_sql, approve_args = executed[1][0]
    assert "SET status = 'APPROVED'" in approve_sql
    assert approve_args == (1, 4, "EVENT_CREATOR")

    notify_args = executed[3][0][1]
    assert notify_args[0] == 4
    assert notify_args[1] == "PERMISSION_REQUEST"
    assert notify_args[2] == "Role Updated"
    mock_conn.commit.assert_called_once()


def test_update_user_email_taken(client, mock_db, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.side_effect = [{"user_id": 4}, {"user_id": 5}]

    response = client.put("/api/admin/users/4", json={"email": "Taken@Example.com"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Email already taken"
    assert mock_cursor.execute.call_args_list[1][0][1] == ("taken@example.com", 4)
    mock_conn.commit.assert_not_called()


def test_update_user_invalid_role(client, login_as):
    login_as("admin_service", role="ADMIN")
    response = client.put("/api/admin/users/4", json={"role": "OWNER"})
    assert response.status_code == 400


def test_update_user_body_must_be_an_object(client, login_as):
    login_as("admin_service", role="ADMIN")
    response = client.put("/api/admin/users/4", json=[{"role": "ADMIN"}])
    assert response.status_code == 400
    assert response.get_json()["error"] == "Request body must be a JSON object"


def test_delete_user(client, mock_db, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = {"user_id": 4, "role": "USER"}

    response = client.delete("/api/admin/users/4")

    assert response.status_code == 200
    assert mock_cursor.execute.call_args[0] == ("DELETE FROM users WHERE user_id = %s;", (4,))
    mock_conn.commit.assert_called_once()


def test_delete_admin_user_refused(client, mock_db, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = {"user_id": 1, "role": "ADMIN"}

    response = client.delete("/api/admin/users/1")

    assert response.status_code == 400
    assert response.get_json()["error"] == "Cannot delete admin user"
    mock_conn.commit.assert_not_called()


# --- EVENTS ---
def test_list_all_events(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchall.side_effect = [[], [event_row(), event_row(event_id=2)]]
    mock_cursor.fetchone.return_value = {"total": 2}

    response = client.get("/api/admin/events?region=1")

    assert response.status_code == 200
    data = response.get_json()
    assert [e["event_id"] for e in data["data"]] == [1, 2]
    assert data["data"][0]["region"]["code"] == "HCM"


def test_update_any_event_notifies_interested(client, mock_db, mocker, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", user_id=9, role="ADMIN")
    mock_send = mocker.patch("eventmap.admin_service.routes.send_event_changed")

    mock_cursor.fetchone.side_effect = [event_row(), event_row(name="Gala Night")]
    mock_cursor.fetchall.return_value = [{"user_id": 5, "email": "fan@example.com"}]

    response = client.put("/api/admin/events/1", json={"name": "Gala Night"})

    assert response.status_code == 200
    assert response.get_json()["name"] == "Gala Night"
    mock_send.assert_called_once_with("fan@example.com", "Concert", ["Name changed to: Gala Night"])


def test_update_any_event_validation(client, login_as):
    login_as("admin_service", role="ADMIN")
    response = client.put("/api/admin/events/1", json={"description": "short"})
    assert response.status_code == 400


def test_delete_any_event(client, mock_db, mocker, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_send = mocker.patch("eventmap.admin_service.routes.send_event_cancelled")

    mock_cursor.fetchone.return_value = event_row(creator_id=3)
    mock_cursor.fetchall.return_value = [{"user_id": 5, "email": "fan@example.com"}]

    response = client.delete("/api/admin/events/1")

    assert response.status_code == 200
    mock_send.assert_called_once_with("fan@example.com", "Concert")
    mock_conn.commit.assert_called_once()


# --- PERMISSION REQUESTS ---
def test_list_permission_requests_defaults_to_pending(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = {"total": 1}
    mock_cursor.fetchall.return_value = [{
        "request_id": 2, "user_id": 4, "requested_role": "EVENT_CREATOR", "status": "PENDING",
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc), "processed_at": None, "processed_by": None,
        "user_name": "Lan", "user_email": "lan@example.com", "user_role": "USER",
    }]

    response = client.get("/api/admin/permission-requests")

    assert response.status_code == 200
    assert response.get_json()["data"][0]["user_name"] == "Lan"
    assert mock_cursor.execute.call_args_list[0][0][1] == ("PENDING",)


def test_list_permission_requests_invalid_status(client, login_as):
    login_as("admin_service", role="ADMIN")
    response = client.get("/api/admin/permission-requests?status=LOST")
    assert response.status_code == 400


def test_reject_permission_request(client, mock_db, login_as):
    mock_conn, mock_cursor = mock_db
    login_as("admin_service", user_id=1, role="ADMIN")
    mock_cursor.fetchone.side_effect = [
        {"request_id": 2, "user_id": 4, "requested_role": "EVENT_CREATOR", "status": "PENDING"},
        {"request_id": 2, "user_id": 4, "requested_role": "EVENT_CREATOR", "status": "REJECTED",
         "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
         "processed_at": datetime(2025, 1, 2, tzinfo=timezone.utc), "processed_by": 1},
    ]

    response = client.post("/api/admin/permission-requests/2/reject")

    assert response.status_code == 200
    assert response.get_json()["status"] == "REJECTED"
    notify_args = mock_cursor.execute.call_args_list[2][0][1]
    assert notify_args[0] == 4
    assert notify_args[1] == "PERMISSION_REQUEST"
    mock_conn.commit.assert_called_once()


def test_reject_processed_request(client, mock_db, login_as):
    _, mock_cursor = mock_db
    login_as("admin_service", role="ADMIN")
    mock_cursor.fetchone.return_value = {"request_id": 2, "user_id": 4, "requested_role": "ADMIN",
                                         "status": "APPROVED"}

    response = client.post("/api/admin/permission-requests/2/reject")
    assert response.status_code == 400
