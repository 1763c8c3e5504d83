from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.

        user_id: subject from JWT (the users.id primary key as a string)
        roles: the user's type (admin | sub_admin | user)
    """

    user_id: str
    roles: frozenset[str]

    @property
    def id(self) -> int:
        return int(self.user_id)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def is_staff(self) -> bool:
        """Admins and sub-admins may act on any learner's records."""
        return self.has_any_role({"admin", "sub_admin"})

    def can_act_for(self, user_id: int) -> bool:
        return self.is_staff() or self.user_id == str(user_id)
