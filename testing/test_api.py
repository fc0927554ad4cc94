"""
Quick API smoke test for Event Map against a locally running gateway.
Tests: health, reference data, register, login, list events.

Run the gateway first (python -m eventmap.gateway.server). New accounts
must verify their email before login succeeds, so set SMOKE_EMAIL and
SMOKE_PASSWORD to a verified account to exercise the authenticated calls.
"""

import os

import requests

BASE = os.getenv("SMOKE_BASE_URL", "http://localhost:5000/api")

# 1) Health
r = requests.get(f"{BASE}/health")
print("HEALTH:", r.status_code, r.json())

# 2) Reference data
r = requests.get(f"{BASE}/categories/")
print("CATEGORIES:", r.status_code, len(r.json()))
r = requests.get(f"{BASE}/regions/")
print("REGIONS:", r.status_code, len(r.json()))

# 3) Register a user (a verification code is emailed)
r = requests.post(f"{BASE}/auth/register", json={
    "name": "Smoke Test",
    "email": "smoke@example.com",
    "password": "pass1234",
    "re_enter_password": "pass1234"
})
print("REGISTER:", r.status_code, r.json())

# 4) Login with a verified account
email = os.getenv("SMOKE_EMAIL")
password = os.getenv("SMOKE_PASSWORD")
token = None
if email and password:
    r = requests.post(f"{BASE}/auth/login", json={"email": email, "password": password})
    print("LOGIN:", r.status_code, r.json())
    token = r.json().get("token")

# 5) List events, with interest flags when signed in
headers = {"Authorization": f"Bearer {token}"} if token else {}
r = requests.get(f"{BASE}/events/", params={"limit": 5}, headers=headers)
print("LIST EVENTS:", r.status_code, r.json().get("pagination"))

# 6) Notifications
if token:
    r = requests.get(f"{BASE}/notifications/", headers=headers)
    print("NOTIFICATIONS:", r.status_code, r.json().get("unread_count"))
