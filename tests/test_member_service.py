from __future__ import annotations

from dataclasses import replace

import pytest

from odin.domain.models import MemberStatus, TargetKind
from odin.repository.data_repository import DataRepository
from odin.services.member_service import MemberNotFoundError, MemberService, MemberValidationError
from odin.utils.config import get_settings


def _build_service(tmp_path) -> MemberService:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "members.db", seed_demo_data=False)
    repository = DataRepository(settings)
    repository.initialize_database()
    return MemberService(repository=repository, settings=settings)


def test_registration_normalizes_and_waits_for_approval(tmp_path) -> None:
    service = _build_service(tmp_path)

    member = service.register_member("  Ana Souza ", "Ana@EJ.com.br", " projetos ")

    assert member.name == "Ana Souza"
    assert member.email == "ana@ej.com.br"
    assert member.area == "PROJETOS"
    assert member.status is MemberStatus.PENDING


@pytest.mark.parametrize(
    ("name", "email", "area"),
    [
        ("", "ana@ej.com.br", "projetos"),
        ("Ana", "not-an-email", "projetos"),
        ("Ana", "ana@ej.com.br", "  "),
    ],
)
def test_invalid_registration_is_rejected(tmp_path, name, email, area) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(MemberValidationError):
        service.register_member(name, email, area)


def test_duplicate_email_is_rejected_case_insensitively(tmp_path) -> None:
    service = _build_service(tmp_path)
    service.register_member("Ana", "ana@ej.com.br", "projetos")

    with pytest.raises(MemberValidationError):
        service.register_member("Outra Ana", "ANA@ej.com.br", "marketing")


def test_members_are_decided_once(tmp_path) -> None:
    service = _build_service(tmp_path)
    member = service.register_member("Ana", "ana@ej.com.br", "projetos")

    approved = service.approve_member(member.member_id)

    assert approved.status is MemberStatus.APPROVED
    with pytest.raises(MemberValidationError):
        service.reject_member(member.member_id)
    with pytest.raises(MemberNotFoundError):
        service.approve_member(999)


def test_only_approved_members_become_score_targets(tmp_path) -> None:
    service = _build_service(tmp_path)
    ana = service.register_member("Ana", "ana@ej.com.br", "projetos")
    bruno = service.register_member("Bruno", "bruno@ej.com.br", "marketing")
    caio = service.register_member("Caio", "caio@ej.com.br", "financeiro")
    service.approve_member(ana.member_id)
    service.approve_member(caio.member_id)
    service.reject_member(bruno.member_id)

    targets = service.score_targets()

    assert [target.target_id for target in targets] == ["enterprise", str(ana.member_id), str(caio.member_id)]
    assert targets[0].kind is TargetKind.ENTERPRISE
    assert targets[0].registration_seq == 0
    assert [target.registration_seq for target in targets[1:]] == [ana.member_id, caio.member_id]
    assert [member.name for member in service.list_members(MemberStatus.REJECTED)] == ["Bruno"]
