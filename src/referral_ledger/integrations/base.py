"""Collaborator interfaces."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class Enrollment:
    id: str
    user_id: int
    course_id: int


class CourseCatalog(Protocol):
    def get_price(self, course_id: int) -> Decimal | None:
        """Current price of a course, or None if the course does not exist."""
        ...


class EnrollmentGateway(Protocol):
    def create_free_enrollment(
        self,
        user_id: int,
        course_id: int,
        idempotency_key: str | None = None,
    ) -> Enrollment:
        """Enroll a user in a course without payment.

        Repeating a call with the same ``idempotency_key`` must return the
        enrollment created by the first call instead of a new one.

        Raises:
            DependencyFailureError: If the enrollment could not be created
        """
        ...


class IdentityDirectory(Protocol):
    def get_display_name(self, user_id: int) -> str | None:
        ...
