# custody/tests/conftest.py

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Callable, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from custody.models import Analysis, AnalysisType, Plant, Requirement, Sample, Storage
from custody.services import analysis as analysis_service
from custody.services import requirements as requirement_service
from custody.services import samples as sample_service
from custody.services import storage as storage_service


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # force_authenticate(user=None) calls logout() internally; avoid recursion
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def user_factory(db) -> Callable[..., Any]:
    User = get_user_model()

    def _factory(username: Optional[str] = None, email: Optional[str] = None, **extra):
        username = username or _rand("user")
        if email is None:
            email = f"{username}@example.com"
        user = User.objects.create_user(username=username, email=email, password="pass123", **extra)
        return user

    return _factory


@pytest.fixture
def requester(user_factory):
    return user_factory("requester", email="requester@example.com", first_name="Rosa", last_name="Diaz")


@pytest.fixture
def analyst(user_factory):
    return user_factory("analyst", email="analyst@example.com")


@pytest.fixture
def auth_client(api_client, requester) -> AuthAPIClient:
    assert api_client.login(username="requester", password="pass123") is True
    return api_client


@pytest.fixture
def plant(db) -> Plant:
    return Plant.objects.create(code=_rand("PL"), name="North Plant", location="Valdivia")


@pytest.fixture
def analysis_type(db) -> AnalysisType:
    return AnalysisType.objects.create(name="Moisture", method="Gravimetric", estimated_hours=4)


@pytest.fixture
def inactive_analysis_type(db) -> AnalysisType:
    return AnalysisType.objects.create(name="Legacy ash", is_active=False)


def _force_status(obj, status: str):
    # Direct status edits are guarded; fixtures bypass the engine
    obj.status = status
    obj.save(update_fields=["status"], _workflow_bypass=True)
    return obj


@pytest.fixture
def requirement_factory(db, requester) -> Callable[..., Requirement]:
    def _factory(*, status: str = "DRAFT", requester=requester, **extra: Any) -> Requirement:
        kwargs = {"sample_type": "Soil", "expected_quantity": 2}
        kwargs.update(extra)
        requirement = requirement_service.create_requirement(requester_id=requester.pk, **kwargs)
        if status != requirement.status:
            _force_status(requirement, status)
        return requirement

    return _factory


@pytest.fixture
def requirement(requirement_factory) -> Requirement:
    return requirement_factory()


@pytest.fixture
def sample_factory(db, requirement) -> Callable[..., Sample]:
    def _factory(*, status: str = "EXPECTED", requirement=requirement, **extra: Any) -> Sample:
        kwargs = {"sample_type": "Soil", "sample_format": "Bag", "quantity": "500 g"}
        kwargs.update(extra)
        sample = sample_service.create_sample(requirement_id=requirement.pk, **kwargs)
        if status != sample.status:
            _force_status(sample, status)
        return sample

    return _factory


@pytest.fixture
def sample(sample_factory) -> Sample:
    return sample_factory()


@pytest.fixture
def analysis_factory(db, analysis_type) -> Callable[..., Analysis]:
    def _factory(*, sample: Sample, status: str = "PENDING", **extra: Any) -> Analysis:
        analysis = analysis_service.create_analysis(
            sample_id=sample.pk,
            analysis_type_id=analysis_type.pk,
            **extra,
        )
        if status != analysis.status:
            _force_status(analysis, status)
        return analysis

    return _factory


@pytest.fixture
def storage_factory(db) -> Callable[..., Storage]:
    def _factory(*, sample: Sample, expires_in_days: Optional[int] = 3, **extra: Any) -> Storage:
        kwargs = {"location": "Bodega A", "shelf": "S1", "box": "B1", "position": "P1"}
        kwargs.update(extra)
        if expires_in_days is not None and "expires_on" not in kwargs:
            kwargs["expires_on"] = timezone.now() + timedelta(days=expires_in_days)
        return storage_service.create_storage(sample_id=sample.pk, **kwargs)

    return _factory
