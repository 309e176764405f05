"""Tests for the HTTP collaborators, using httpx's mock transport."""

import json
from decimal import Decimal

import httpx
import pytest

from referral_ledger.integrations.http import HttpCourseCatalog, HttpEnrollmentGateway
from referral_ledger.ledger.errors import DependencyFailureError


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestHttpCourseCatalog:

    def test_returns_exact_decimal_price(self):
        def handler(request):
            assert request.url.path == "/api/courses/101"
            return httpx.Response(200, json={"id": 101, "price": 19.99})

        catalog = HttpCourseCatalog("http://courses.test/api/courses/", client=_client(handler))

        assert catalog.get_price(101) == Decimal("19.99")

    def test_missing_course_is_none(self):
        catalog = HttpCourseCatalog("http://courses.test/api/courses", client=_client(lambda r: httpx.Response(404)))

        assert catalog.get_price(999) is None

    def test_server_error_is_dependency_failure(self):
        catalog = HttpCourseCatalog("http://courses.test/api/courses", client=_client(lambda r: httpx.Response(503)))

        with pytest.raises(DependencyFailureError):
            catalog.get_price(101)

    def test_transport_error_is_dependency_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        catalog = HttpCourseCatalog("http://courses.test/api/courses", client=_client(handler))

        with pytest.raises(DependencyFailureError):
            catalog.get_price(101)


class TestHttpEnrollmentGateway:

    def test_creates_free_enrollment(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "e-42"})

        gateway = HttpEnrollmentGateway("http://enroll.test/api/enrollments", client=_client(handler))
        enrollment = gateway.create_free_enrollment(user_id=5, course_id=101)

        assert enrollment.id == "e-42"
        assert enrollment.user_id == 5
        assert enrollment.course_id == 101
        assert seen["method"] == "POST"
        assert seen["body"] == {"userId": 5, "courseId": 101, "status": "active", "paymentId": None}

    def test_sends_idempotency_key(self):
        headers = []

        def handler(request):
            headers.append(request.headers.get("Idempotency-Key"))
            return httpx.Response(201, json={"id": "e-42"})

        gateway = HttpEnrollmentGateway("http://enroll.test/api/enrollments", client=_client(handler))
        gateway.create_free_enrollment(user_id=5, course_id=101, idempotency_key="referral-reward-7")
        gateway.create_free_enrollment(user_id=5, course_id=101)

        assert headers == ["referral-reward-7", None]

    def test_rejection_is_dependency_failure(self):
        gateway = HttpEnrollmentGateway(
            "http://enroll.test/api/enrollments",
            client=_client(lambda r: httpx.Response(409, json={"error": "already enrolled"})),
        )

        with pytest.raises(DependencyFailureError):
            gateway.create_free_enrollment(user_id=5, course_id=101)
