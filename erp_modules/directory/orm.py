"""
Directory ORM Models (``erp_modules.directory.orm``).

People are owned by HR/admissions; the research core only reads them.
``user_id`` links a person to a login account when one exists.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class PersonModel(TrackedBase):
    """
    ORM model for internal people.

    Guarantees:
        - uid is unique (uq_directory_people_uid); email is unique (uq_directory_people_email).
        - person_type stored as string enum value.
    """

    __tablename__ = "directory_people"

    __table_args__ = (
        UniqueConstraint("uid", name="uq_directory_people_uid"),
        UniqueConstraint("email", name="uq_directory_people_email"),
        UniqueConstraint("user_id", name="uq_directory_people_user_id"),
        Index("idx_directory_people_is_active", "is_active"),
    )

    uid: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    person_type: Mapped[str] = mapped_column(String(20), default="faculty")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from erp_modules.directory.models import InternalIdentity, PersonType

        return InternalIdentity(
            person_id=self.id,
            uid=self.uid,
            name=self.name,
            email=self.email,
            designation=self.designation,
            department=self.department_name,
            person_type=PersonType(self.person_type),
            user_id=self.user_id,
        )

    def __repr__(self) -> str:
        return f"<PersonModel {self.uid}: {self.name}>"
