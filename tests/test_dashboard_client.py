from __future__ import annotations

import pytest
import requests

from dashboard import client


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.reason = "error"
        self.content = b"" if payload is None else b"{}"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def test_request_sends_bearer_token_and_returns_json(monkeypatch) -> None:
    calls = []

    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        calls.append((method, url, headers, kwargs))
        return _FakeResponse(200, {"status": "APPROVED"})

    monkeypatch.setattr(client.requests, "request", fake_request)

    payload = client.review_external_request(9, True, token="abc", base_url="http://odin")

    assert payload == {"status": "APPROVED"}
    method, url, headers, kwargs = calls[0]
    assert (method, url) == ("POST", "http://odin/external-requests/9/review")
    assert headers == {"Authorization": "Bearer abc"}
    assert kwargs["json"] == {"approve": True}


def test_conflict_detail_is_surfaced_as_a_readable_error(monkeypatch) -> None:
    detail = {"detail": {"message": "Salinha 1 is already booked", "booking_id": 3}}
    monkeypatch.setattr(client.requests, "request", lambda *args, **kwargs: _FakeResponse(409, detail))

    with pytest.raises(client.DashboardApiError, match="409: Salinha 1 is already booked"):
        client._request("POST", "/bookings", base_url="http://odin")


def test_connection_failures_are_wrapped(monkeypatch) -> None:
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(client.requests, "request", refuse)

    with pytest.raises(client.DashboardApiError, match="Backend connection failed"):
        client.fetch_ranking(base_url="http://odin")


def test_schedule_frame_shows_local_times_sorted_by_resource() -> None:
    schedule = {
        "timezone": "America/Sao_Paulo",
        "resources": [
            {
                "resource": {"name": "Salinha 2"},
                "slots": [
                    {
                        "booking_id": 2,
                        "kind": "ROOM",
                        "start": "2025-01-10T17:00:00+00:00",
                        "end": "2025-01-10T18:00:00+00:00",
                        "title": "Entrevista",
                        "owner_id": 5,
                    }
                ],
            },
            {
                "resource": {"name": "Salinha 1"},
                "slots": [
                    {
                        "booking_id": 1,
                        "kind": "ROOM",
                        "start": "2025-01-10T14:00:00+00:00",
                        "end": "2025-01-10T15:30:00+00:00",
                        "title": "Reunião",
                        "owner_id": 4,
                    }
                ],
            },
            {"resource": {"name": "Projetor"}, "slots": []},
        ],
    }

    frame = client.schedule_frame(schedule)

    assert frame["resource"].tolist() == ["Salinha 1", "Salinha 2"]
    assert frame["start"].tolist() == ["11:00", "14:00"]
    assert frame["end"].tolist() == ["12:30", "15:00"]


def test_empty_payloads_produce_empty_tables() -> None:
    assert client.schedule_frame({"resources": []}).empty
    assert list(client.ranking_table([]).columns) == client.RANKING_COLUMNS[1:]


def test_ranking_table_is_indexed_by_position() -> None:
    rows = [
        {"position": 1, "target_id": "2", "name": "Ana", "kind": "MEMBER", "total_points": 30, "tag_count": 2},
        {"position": 2, "target_id": "enterprise", "name": "Empresa", "kind": "ENTERPRISE", "total_points": 0, "tag_count": 0},
    ]

    table = client.ranking_table(rows)

    assert table.index.tolist() == [1, 2]
    assert table.loc[1, "name"] == "Ana"
    assert "target_id" not in table.columns
