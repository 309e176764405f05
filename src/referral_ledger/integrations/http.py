"""HTTP implementations of the course and enrollment collaborators."""

from decimal import Decimal, InvalidOperation

import httpx

from referral_ledger.integrations.base import Enrollment
from referral_ledger.ledger.errors import DependencyFailureError
from referral_ledger.logging_config import get_logger
from referral_ledger.settings import settings

logger = get_logger(__name__)


class _HttpCollaborator:
    def __init__(self, base_url: str, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(
            timeout=settings.request_timeout_seconds,
            headers={"User-Agent": f"{settings.app_name}/0.1.0"},
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class HttpCourseCatalog(_HttpCollaborator):
    """Reads course prices from ``GET {base_url}/{course_id}``."""

    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None):
        super().__init__(base_url or settings.course_api_url, client)

    def get_price(self, course_id: int) -> Decimal | None:
        url = f"{self.base_url}/{course_id}"
        try:
            response = self.client.get(url)
        except httpx.HTTPError as e:
            logger.warning("course_lookup_failed", course_id=course_id, error=str(e))
            raise DependencyFailureError("Course lookup failed", course_id=course_id, error=str(e)) from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning("course_lookup_failed", course_id=course_id, status=response.status_code)
            raise DependencyFailureError(
                f"Course lookup returned {response.status_code}",
                course_id=course_id,
                status_code=response.status_code,
            )

        try:
            # Prices arrive as JSON numbers; go through str to keep cents exact
            return Decimal(str(response.json()["price"]))
        except (KeyError, ValueError, InvalidOperation) as e:
            raise DependencyFailureError("Malformed course response", course_id=course_id) from e


class HttpEnrollmentGateway(_HttpCollaborator):
    """Creates free enrollments with ``POST {base_url}``."""

    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None):
        super().__init__(base_url or settings.enrollment_api_url, client)

    def create_free_enrollment(
        self,
        user_id: int,
        course_id: int,
        idempotency_key: str | None = None,
    ) -> Enrollment:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        payload = {
            "userId": user_id,
            "courseId": course_id,
            "status": "active",
            "paymentId": None,
        }
        try:
            response = self.client.post(self.base_url, json=payload, headers=headers)
            response.raise_for_status()
            enrollment_id = str(response.json()["id"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(
                "free_enrollment_failed",
                user_id=user_id,
                course_id=course_id,
                error=str(e),
            )
            raise DependencyFailureError(
                "Free enrollment could not be created",
                user_id=user_id,
                course_id=course_id,
                error=str(e),
            ) from e

        logger.info("free_enrollment_created", user_id=user_id, course_id=course_id, enrollment_id=enrollment_id)
        return Enrollment(id=enrollment_id, user_id=user_id, course_id=course_id)
