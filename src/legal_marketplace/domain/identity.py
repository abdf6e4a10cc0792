"""Caller identity handed to the engine by the (external) auth layer."""

from __future__ import annotations

from dataclasses import dataclass

from legal_marketplace.domain.enums import Role
from legal_marketplace.domain.exceptions import AuthorizationError


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_admin(self) -> None:
        if not self.is_admin:
            raise AuthorizationError("Admin role required")


SYSTEM_ACTOR = "SYSTEM"
