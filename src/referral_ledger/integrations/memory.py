"""In-process collaborators for tests and local runs."""

import itertools
from decimal import Decimal

from referral_ledger.integrations.base import Enrollment
from referral_ledger.ledger.errors import DependencyFailureError


class InMemoryCourseCatalog:
    def __init__(self, prices: dict[int, Decimal] | None = None):
        self.prices = dict(prices or {})

    def get_price(self, course_id: int) -> Decimal | None:
        return self.prices.get(course_id)


class InMemoryEnrollmentGateway:
    """Records enrollments; set ``fail`` to simulate an outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enrollments: list[Enrollment] = []
        self.by_key: dict[str, Enrollment] = {}
        self._ids = itertools.count(1)

    def create_free_enrollment(
        self,
        user_id: int,
        course_id: int,
        idempotency_key: str | None = None,
    ) -> Enrollment:
        if idempotency_key in self.by_key:
            return self.by_key[idempotency_key]
        if self.fail:
            raise DependencyFailureError(
                "Enrollment service unavailable",
                user_id=user_id,
                course_id=course_id,
            )
        enrollment = Enrollment(id=f"enr-{next(self._ids)}", user_id=user_id, course_id=course_id)
        self.enrollments.append(enrollment)
        if idempotency_key:
            self.by_key[idempotency_key] = enrollment
        return enrollment


class InMemoryIdentityDirectory:
    def __init__(self, names: dict[int, str] | None = None):
        self.names = dict(names or {})

    def get_display_name(self, user_id: int) -> str | None:
        return self.names.get(user_id)
