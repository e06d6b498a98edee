from __future__ import annotations

import io
from dataclasses import replace

import pandas as pd
from fastapi import FastAPI
from fastapi.testclient import TestClient

from odin.controllers.admin_controller import router as admin_router
from odin.controllers.points_controller import router as points_router
from odin.controllers.reservation_controller import router as reservation_router
from odin.repository.data_repository import DataRepository
from odin.services.auth_service import AuthService
from odin.services.member_service import MemberService
from odin.services.period_service import PeriodService
from odin.services.points_service import PointsService
from odin.services.reservation_service import ReservationService
from odin.services.template_import_service import TemplateImportService
from odin.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str, director_token: str):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        director_token=director_token,
        seed_demo_data=True,
    )


def _build_test_app(tmp_path, director_token: str) -> FastAPI:
    settings = _build_test_settings(tmp_path, "api_flow.db", director_token)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()

    member_service = MemberService(repository=repository, settings=settings)
    period_service = PeriodService(repository=repository, settings=settings)
    reservation_service = ReservationService(
        repository=repository,
        member_service=member_service,
        settings=settings,
    )
    points_service = PointsService(
        repository=repository,
        member_service=member_service,
        settings=settings,
    )

    app = FastAPI()
    app.include_router(admin_router)
    app.include_router(reservation_router)
    app.include_router(points_router)
    app.state.repository = repository
    app.state.member_service = member_service
    app.state.period_service = period_service
    app.state.reservation_service = reservation_service
    app.state.points_service = points_service
    app.state.template_import_service = TemplateImportService(points_service=points_service)
    app.state.auth_service = AuthService(settings=settings)
    return app


def _register_and_approve(client: TestClient, headers: dict, name: str, email: str, area: str) -> int:
    response = client.post("/members", json={"name": name, "email": email, "area": area})
    assert response.status_code == 201
    member_id = response.json()["member_id"]
    approved = client.post(f"/members/{member_id}/approve", headers=headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    return member_id


def test_reservation_end_to_end_flow(tmp_path):
    director_token = "diretoria-secreta"
    client = TestClient(_build_test_app(tmp_path, director_token))

    assert client.post("/login", json={"director_token": "palpite"}).status_code == 401
    login = client.post("/login", json={"director_token": director_token})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    assert client.post("/members/1/approve").status_code == 401
    ana = _register_and_approve(client, headers, "Ana", "ana@ej.com.br", "projetos")
    bruno = _register_and_approve(client, headers, "Bruno", "bruno@ej.com.br", "marketing")

    resources = client.get("/resources").json()
    room = next(resource for resource in resources if resource["name"] == "Salinha 1")
    assert resources[-1]["kind"] == "EXTERNAL"

    created = client.post(
        "/bookings",
        json={
            "kind": "ROOM",
            "resource_id": room["resource_id"],
            "owner_id": ana,
            "start": "2025-01-10T14:00:00+00:00",
            "end": "2025-01-10T15:00:00+00:00",
            "title": "Reunião de projeto",
        },
    )
    assert created.status_code == 201
    booking_id = created.json()["booking_id"]

    conflict = client.post(
        "/bookings",
        json={
            "kind": "ROOM",
            "resource_id": room["resource_id"],
            "owner_id": bruno,
            "start": "2025-01-10T14:30:00+00:00",
            "end": "2025-01-10T14:45:00+00:00",
            "title": "Entrevista",
        },
    )
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["booking_id"] == booking_id

    naive = client.post(
        "/bookings",
        json={
            "kind": "ROOM",
            "resource_id": room["resource_id"],
            "owner_id": bruno,
            "start": "2025-01-10T16:00:00",
            "end": "2025-01-10T17:00:00",
            "title": "Sem fuso",
        },
    )
    assert naive.status_code == 422

    schedule = client.get("/schedule/2025-01-10")
    assert schedule.status_code == 200
    body = schedule.json()
    assert body["timezone"] == "America/Sao_Paulo"
    room_row = next(row for row in body["resources"] if row["resource"]["name"] == "Salinha 1")
    assert [slot["booking_id"] for slot in room_row["slots"]] == [booking_id]

    window = client.get(
        f"/resources/ROOM/{room['resource_id']}/window",
        params={"at": "2025-01-10T14:30:00+00:00"},
    )
    assert window.json()["status"] == "OCCUPIED"

    forbidden = client.delete(f"/bookings/{booking_id}", params={"actor_id": bruno})
    assert forbidden.status_code == 403
    assert client.delete(f"/bookings/{booking_id}", headers=headers).status_code == 204

    external = client.post(
        "/external-requests",
        json={
            "owner_id": ana,
            "start": "2025-01-11T13:00:00+00:00",
            "end": "2025-01-11T15:00:00+00:00",
            "title": "Workshop",
        },
    )
    assert external.status_code == 201
    assert external.json()["status"] == "PENDING"
    pending = client.get("/external-requests", params={"status": "PENDING"}).json()
    assert [item["booking_id"] for item in pending] == [external.json()["booking_id"]]
    edit_payload = {
        "actor_id": bruno,
        "start": "2025-01-11T14:00:00+00:00",
        "end": "2025-01-11T16:00:00+00:00",
        "title": "Workshop de vendas",
    }
    edit_url = f"/external-requests/{external.json()['booking_id']}"
    assert client.patch(edit_url, json=edit_payload).status_code == 403
    edited = client.patch(edit_url, json={**edit_payload, "actor_id": ana})
    assert edited.status_code == 200
    assert edited.json()["title"] == "Workshop de vendas"
    assert edited.json()["status"] == "PENDING"
    reviewed = client.post(
        f"/external-requests/{external.json()['booking_id']}/review",
        json={"approve": True},
        headers=headers,
    )
    assert reviewed.json()["status"] == "APPROVED"


def test_points_end_to_end_flow(tmp_path):
    director_token = "diretoria-secreta"
    client = TestClient(_build_test_app(tmp_path, director_token))
    headers = {
        "Authorization": "Bearer "
        + client.post("/login", json={"director_token": director_token}).json()["access_token"]
    }
    ana = _register_and_approve(client, headers, "Ana", "ana@ej.com.br", "marketing")

    templates = {template["name"]: template for template in client.get("/tag-templates").json()}
    blog = templates["Post no blog"]
    assert blog["is_scalable"]

    award_payload = {
        "target_ids": [str(ana)],
        "template_ids": [blog["template_id"]],
        "date_performed": "2025-03-03T19:00:00+00:00",
    }
    assert client.post("/tags", json=award_payload).status_code == 401
    first = client.post("/tags", json=award_payload, headers=headers)
    assert first.status_code == 201
    assert first.json()[0]["value"] == 20

    preview = client.post(
        "/tags/preview",
        json={**award_payload, "date_performed": "2025-03-10T19:00:00+00:00"},
    )
    assert preview.json()["values"] == {f"{ana}-{blog['template_id']}": 25}

    ranking = client.get("/ranking").json()
    assert [row["target_id"] for row in ranking] == [str(ana), "enterprise"]
    assert ranking[0]["total_points"] == 20

    export = client.get("/ranking.csv")
    assert export.headers["content-type"].startswith("text/csv")
    frame = pd.read_csv(io.StringIO(export.text))
    assert frame["total_points"].tolist() == [20, 0]

    imported = client.post(
        "/tag-templates/import",
        json={"csv_text": "name,base_value\nMentoria,8\nPost no blog,20\n"},
        headers=headers,
    )
    assert imported.status_code == 200
    assert [template["name"] for template in imported.json()["created"]] == ["Mentoria"]
    assert imported.json()["skipped"] == ["Post no blog"]

    semester_id = next(item for item in client.get("/semesters").json() if item["is_active"])["semester_id"]
    closed = client.post(f"/semesters/{semester_id}/snapshot", headers=headers)
    assert closed.status_code == 201
    assert {row["target_id"]: row["total_points"] for row in closed.json()} == {"enterprise": 0, str(ana): 20}
    assert client.post(f"/semesters/{semester_id}/snapshot", headers=headers).status_code == 409
    assert all(row["total_points"] == 0 for row in client.get("/ranking").json())

    history = client.get(f"/targets/{ana}/history").json()
    assert history["live_total"] == 0
    assert history["tags"][0]["archived"]
    assert [snapshot["total_points"] for snapshot in history["snapshots"]] == [20]

    rolled_back = client.delete(f"/semesters/{semester_id}/snapshot", headers=headers)
    assert rolled_back.status_code == 200
    assert client.get("/ranking").json()[0]["total_points"] == 20
    assert client.delete(f"/semesters/{semester_id}/snapshot", headers=headers).status_code == 404


def test_solicitation_review_flow(tmp_path):
    director_token = "diretoria-secreta"
    client = TestClient(_build_test_app(tmp_path, director_token))
    headers = {
        "Authorization": "Bearer "
        + client.post("/login", json={"director_token": director_token}).json()["access_token"]
    }
    ana = _register_and_approve(client, headers, "Ana", "ana@ej.com.br", "projetos")
    template_id = next(
        template["template_id"]
        for template in client.get("/tag-templates").json()
        if template["name"] == "Presença em reunião geral"
    )

    submitted = client.post(
        "/solicitations",
        json={
            "requester_id": ana,
            "template_ids": [template_id],
            "date_performed": "2025-03-03T19:00:00+00:00",
            "is_for_enterprise": True,
        },
    )
    assert submitted.status_code == 201
    assert submitted.json()["target_ids"] == ["enterprise"]
    solicitation_id = submitted.json()["solicitation_id"]

    assert client.post(f"/solicitations/{solicitation_id}/review", json={"approve": True}).status_code == 401
    reviewed = client.post(
        f"/solicitations/{solicitation_id}/review",
        json={"approve": True, "notes": "Aprovado em reunião"},
        headers=headers,
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["solicitation"]["status"] == "APPROVED"
    assert [tag["target_id"] for tag in reviewed.json()["tags"]] == ["enterprise"]
    assert client.get("/ranking").json()[0]["target_id"] == "enterprise"
