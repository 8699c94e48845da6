from dataclasses import dataclass
from typing import Optional

from pld_scheduler.core.exceptions import AccessDeniedError
from pld_scheduler.models.member import Member, MemberRole


@dataclass(frozen=True)
class RoleFlags:
    is_division_admin: bool = False
    is_union_admin: bool = False
    is_application_admin: bool = False
    is_company_admin: bool = False

    @property
    def can_review_requests(self) -> bool:
        """Approve, deny and confirm cancellations."""
        return (
            self.is_division_admin
            or self.is_union_admin
            or self.is_application_admin
            or self.is_company_admin
        )

    @property
    def can_manage_division(self) -> bool:
        """Edit allotment capacity and SDV entitlements."""
        return self.is_division_admin or self.is_union_admin or self.is_application_admin


def has_role(member: Optional[Member]) -> RoleFlags:
    role = getattr(member, "role", None)
    return RoleFlags(
        is_division_admin=role == MemberRole.DIVISION_ADMIN,
        is_union_admin=role == MemberRole.UNION_ADMIN,
        is_application_admin=role == MemberRole.APPLICATION_ADMIN,
        is_company_admin=role == MemberRole.COMPANY_ADMIN,
    )


def ensure_can_review(member: Member, division: Optional[str] = None) -> RoleFlags:
    flags = has_role(member)
    if not flags.can_review_requests:
        raise AccessDeniedError("Only administrators can review leave requests")
    _ensure_division_scope(member, flags, division)
    return flags


def ensure_can_manage_division(member: Member, division: Optional[str]) -> RoleFlags:
    flags = has_role(member)
    if not flags.can_manage_division:
        raise AccessDeniedError("Only division, union or application administrators can change division settings")
    _ensure_division_scope(member, flags, division)
    return flags


def _ensure_division_scope(member: Member, flags: RoleFlags, division: Optional[str]) -> None:
    # Division admins only act inside their own division
    if division is not None and flags.is_division_admin and member.division != division:
        raise AccessDeniedError(f"Division admins can only manage division {member.division}")
