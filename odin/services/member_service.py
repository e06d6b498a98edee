"""Member registration and the scoring target roster."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from odin.domain.models import Member, MemberStatus, ScoreTarget, TargetKind
from odin.repository.data_repository import DataRepository
from odin.utils.config import Settings, get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class MemberError(Exception):
    """Base member failure."""


class MemberValidationError(MemberError):
    """Raised when member inputs are invalid."""


class MemberNotFoundError(MemberError):
    """Raised when a member id does not exist."""


class MemberService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def register_member(self, name: str, email: str, area: str) -> Member:
        clean_name = name.strip()
        clean_email = email.strip().lower()
        clean_area = area.strip().upper()
        if not clean_name:
            raise MemberValidationError("name must not be blank")
        if EMAIL_PATTERN.match(clean_email) is None:
            raise MemberValidationError(f"'{email}' is not a valid email address")
        if not clean_area:
            raise MemberValidationError("area must not be blank")
        if self._repository.email_exists(clean_email):
            raise MemberValidationError(f"email '{clean_email}' is already registered")

        member = self._repository.create_member(clean_name, clean_email, clean_area)
        logger.info("Registered member %s (%s) pending approval", member.member_id, member.area)
        return member

    def get_member(self, member_id: int) -> Member:
        member = self._repository.get_member(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return member

    def require_approved(self, member_id: int) -> Member:
        member = self.get_member(member_id)
        if member.status is not MemberStatus.APPROVED:
            raise MemberValidationError(f"Member {member_id} is not approved")
        return member

    def approve_member(self, member_id: int) -> Member:
        return self._decide(member_id, MemberStatus.APPROVED)

    def reject_member(self, member_id: int) -> Member:
        return self._decide(member_id, MemberStatus.REJECTED)

    def _decide(self, member_id: int, status: MemberStatus) -> Member:
        member = self.get_member(member_id)
        if member.status is not MemberStatus.PENDING:
            raise MemberValidationError(
                f"Member {member_id} was already {member.status.value.lower()}"
            )
        self._repository.set_member_status(member_id, status)
        logger.info("Member %s marked %s", member_id, status.value)
        return self.get_member(member_id)

    def list_members(self, status: Optional[MemberStatus] = None) -> list[Member]:
        return self._repository.list_members(status)

    def enterprise_target(self) -> ScoreTarget:
        return ScoreTarget(
            target_id=self._settings.enterprise_target_id,
            display_name=self._settings.enterprise_display_name,
            kind=TargetKind.ENTERPRISE,
            registration_seq=0,
        )

    def score_targets(self, approved: Optional[Sequence[Member]] = None) -> list[ScoreTarget]:
        """Approved members plus the enterprise, which ranks as registered first."""
        if approved is None:
            approved = self._repository.list_members(MemberStatus.APPROVED)
        targets = [self.enterprise_target()]
        for member in approved:
            targets.append(
                ScoreTarget(
                    target_id=str(member.member_id),
                    display_name=member.name,
                    kind=TargetKind.MEMBER,
                    registration_seq=member.member_id,
                )
            )
        return targets
