"""HTTP helpers the Streamlit dashboard uses to talk to the Odin API."""

from __future__ import annotations

import os
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import requests


API_BASE_URL = os.getenv("ODIN_API_BASE_URL", "http://127.0.0.1:8000")
SCHEDULE_COLUMNS = ["resource", "kind", "start", "end", "title", "owner_id"]
RANKING_COLUMNS = ["position", "name", "kind", "total_points", "tag_count"]


class DashboardApiError(Exception):
    """Raised when the API cannot be reached or answers with an error."""


def _detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason
    detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
    if isinstance(detail, dict):
        return str(detail.get("message", detail))
    return str(detail)


def _request(
    method: str,
    path: str,
    token: Optional[str] = None,
    base_url: str = API_BASE_URL,
    timeout: float = 10,
    **kwargs: Any,
) -> Any:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    try:
        response = requests.request(method, f"{base_url}{path}", headers=headers, timeout=timeout, **kwargs)
    except requests.exceptions.RequestException as exc:
        raise DashboardApiError(f"Backend connection failed: {exc}") from exc
    if response.status_code >= 400:
        raise DashboardApiError(f"{response.status_code}: {_detail(response)}")
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def login(director_token: str, base_url: str = API_BASE_URL) -> str:
    payload = _request("POST", "/login", base_url=base_url, json={"director_token": director_token})
    return str(payload["access_token"])


def fetch_schedule(day: date, base_url: str = API_BASE_URL) -> Dict[str, Any]:
    return _request("GET", f"/schedule/{day.isoformat()}", base_url=base_url)


def fetch_ranking(base_url: str = API_BASE_URL) -> List[Dict[str, Any]]:
    return _request("GET", "/ranking", base_url=base_url)


def fetch_window(kind: str, resource_id: int, base_url: str = API_BASE_URL) -> Dict[str, Any]:
    return _request("GET", f"/resources/{kind}/{resource_id}/window", base_url=base_url)


def fetch_pending_external_requests(base_url: str = API_BASE_URL) -> List[Dict[str, Any]]:
    return _request("GET", "/external-requests", base_url=base_url, params={"status": "PENDING"})


def review_external_request(
    booking_id: int,
    approve: bool,
    token: Optional[str],
    base_url: str = API_BASE_URL,
) -> Dict[str, Any]:
    return _request(
        "POST",
        f"/external-requests/{booking_id}/review",
        token=token,
        base_url=base_url,
        json={"approve": approve},
    )


def create_booking(
    kind: str,
    resource_id: int,
    owner_id: int,
    start: datetime,
    end: datetime,
    title: str,
    base_url: str = API_BASE_URL,
) -> Dict[str, Any]:
    return _request(
        "POST",
        "/bookings",
        base_url=base_url,
        json={
            "kind": kind,
            "resource_id": resource_id,
            "owner_id": owner_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "title": title,
        },
    )


def schedule_frame(schedule: Dict[str, Any]) -> pd.DataFrame:
    """Flatten the schedule payload into one row per occupied slot, in local time."""
    tz = schedule.get("timezone", "UTC")
    rows = []
    for row in schedule.get("resources", []):
        resource = row["resource"]
        for slot in row.get("slots", []):
            rows.append(
                {
                    "resource": resource["name"],
                    "kind": slot["kind"],
                    "start": slot["start"],
                    "end": slot["end"],
                    "title": slot["title"],
                    "owner_id": slot["owner_id"],
                }
            )
    frame = pd.DataFrame(rows, columns=SCHEDULE_COLUMNS)
    if frame.empty:
        return frame
    for column in ("start", "end"):
        frame[column] = pd.to_datetime(frame[column], utc=True).dt.tz_convert(tz).dt.strftime("%H:%M")
    return frame.sort_values(["resource", "start"]).reset_index(drop=True)


def ranking_table(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    frame = pd.DataFrame(rows)
    if frame.empty:
        return pd.DataFrame(columns=RANKING_COLUMNS).set_index("position")
    return frame[RANKING_COLUMNS].set_index("position")
