"""
Directory Domain Models (``erp_modules.directory.models``).

``InternalIdentity`` is the resolved view of an internal person used when
an internal author is added to a contribution.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class PersonType(Enum):
    FACULTY = "faculty"
    STUDENT = "student"


@dataclass(frozen=True)
class InternalIdentity:
    person_id: UUID
    uid: str
    name: str
    email: str
    designation: str | None
    department: str | None
    person_type: PersonType
    user_id: UUID | None = None
