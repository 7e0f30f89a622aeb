"""
The principal an audited action is attributed to.

An ``Actor`` is built once by the authentication dependency and stored on
``request.state.actor``. Audit code reads it instead of guessing identity from
loosely shaped user dictionaries.
"""

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

UserType = Literal["admin", "student", "system"]


@dataclass(frozen=True)
class Actor:
    user_type: UserType
    user_id: Optional[int] = None
    email: Optional[str] = None
    student_number: Optional[str] = None
    position: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def admin(cls, admin_id: int, email: Optional[str] = None, **profile: Any) -> "Actor":
        return cls(user_type="admin", user_id=admin_id, email=email, **profile)

    @classmethod
    def student(
        cls,
        student_id: int,
        email: Optional[str] = None,
        student_number: Optional[str] = None,
        **profile: Any,
    ) -> "Actor":
        return cls(
            user_type="student",
            user_id=student_id,
            email=email,
            student_number=student_number,
            **profile,
        )

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_type="system")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Actor":
        """
        Build an actor from an untyped user dictionary.

        Used where identity only exists as data, e.g. the user object returned
        by a login response or the credentials posted to it. The role is taken
        from ``role`` when present, otherwise "student" if a student number is
        present, otherwise "admin". The id is the first of ``id``,
        ``admin_id`` and ``student_id`` that is set.
        """
        if not data:
            return cls.system()

        role = data.get("role") or data.get("user_type")
        if role not in ("admin", "student", "system"):
            role = "student" if data.get("student_number") else "admin"

        user_id = None
        for key in ("id", "admin_id", "student_id"):
            if data.get(key) is not None:
                user_id = _to_int(data[key])
                break

        return cls(
            user_type=role,
            user_id=user_id,
            email=data.get("email"),
            student_number=data.get("student_number"),
            position=data.get("position"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )

    @property
    def is_super_admin(self) -> bool:
        return self.user_type == "admin" and self.position == "super_admin"

    def identifier(self, fallback: str = "unknown") -> str:
        """Human-readable handle used in audit descriptions."""
        return self.email or self.student_number or fallback


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
