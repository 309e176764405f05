"""External collaborators the ledger calls: course prices, enrollments, identities."""

from referral_ledger.integrations.base import (
    CourseCatalog,
    Enrollment,
    EnrollmentGateway,
    IdentityDirectory,
)
from referral_ledger.integrations.http import HttpCourseCatalog, HttpEnrollmentGateway
from referral_ledger.integrations.memory import (
    InMemoryCourseCatalog,
    InMemoryEnrollmentGateway,
    InMemoryIdentityDirectory,
)

__all__ = [
    "CourseCatalog",
    "Enrollment",
    "EnrollmentGateway",
    "IdentityDirectory",
    "HttpCourseCatalog",
    "HttpEnrollmentGateway",
    "InMemoryCourseCatalog",
    "InMemoryEnrollmentGateway",
    "InMemoryIdentityDirectory",
]
