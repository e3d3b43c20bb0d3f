"""Shared fixtures: a controllable clock and a scripted identity provider."""

from datetime import datetime, timedelta
from typing import Optional

import pytest
import pytz

from tokengen.auth.base import IdentityProviderClient
from tokengen.auth.token_cache import TokenCache
from tokengen.models.request import AcquisitionRequest, ProfileType, TokenTypePreference
from tokengen.models.token import DeviceCodeSession, PollOutcome, PollStatus, TokenResult
from tokengen.utils.clock import SystemClock

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=pytz.utc)


class FakeClock:
    """Clock whose sleeps advance time instantly."""

    def __init__(self, start: datetime = START):
        self.current = start
        self.sleeps: list[float] = []
        self.cancel_on_sleep = False

    def now(self) -> datetime:
        return self.current

    def sleep(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        if self.cancel_on_sleep:
            return True
        self.current += timedelta(seconds=seconds)
        return False

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeProvider(IdentityProviderClient):
    """Identity provider returning scripted results; exceptions are raised."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[tuple[str, dict]] = []
        self.client_credentials_results: list = []
        self.refresh_results: list = []
        self.poll_outcomes: list = []
        self.session_lifetime = 900
        self.session_interval = 5
        self.polled_at: list[datetime] = []

    @staticmethod
    def _next(queue: list):
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def client_credentials(self, tenant, authority, client_id, secret, resource):
        self.calls.append(("client_credentials", dict(tenant=tenant, client_id=client_id, resource=resource)))
        return self._next(self.client_credentials_results)

    def device_code_start(self, tenant, authority, client_id, scope):
        self.calls.append(("device_code_start", dict(tenant=tenant, client_id=client_id, scope=scope)))
        return DeviceCodeSession(
            device_code="device-123",
            user_code="ABCD-EFGH",
            verification_uri="https://microsoft.com/devicelogin",
            interval=self.session_interval,
            expires_at=self.clock.now() + timedelta(seconds=self.session_lifetime),
        )

    def device_code_poll(self, session):
        self.calls.append(("device_code_poll", {}))
        self.polled_at.append(self.clock.now())
        if not self.poll_outcomes:
            return PollOutcome(status=PollStatus.PENDING, error="authorization_pending")
        return self._next(self.poll_outcomes)

    def refresh(self, tenant, authority, client_id, refresh_token, scope):
        self.calls.append(("refresh", dict(refresh_token=refresh_token, scope=scope)))
        return self._next(self.refresh_results)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


def token_result(
    clock: FakeClock,
    access_token: Optional[str] = "access-1",
    id_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    lifetime: int = 3600,
) -> TokenResult:
    expires = clock.now() + timedelta(seconds=lifetime)
    return TokenResult(
        access_token=access_token,
        id_token=id_token,
        refresh_token=refresh_token,
        access_token_expires_at=expires if access_token else None,
        id_token_expires_at=expires if id_token else None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider(clock: FakeClock) -> FakeProvider:
    return FakeProvider(clock)


@pytest.fixture
def make_result(clock: FakeClock):
    """Factory for TokenResults expiring relative to the fake clock."""

    def factory(**kwargs) -> TokenResult:
        return token_result(clock, **kwargs)

    return factory


@pytest.fixture
def memory_cache(clock: FakeClock) -> TokenCache:
    return TokenCache(persistence=None, clock=clock)


@pytest.fixture
def app_request() -> AcquisitionRequest:
    return AcquisitionRequest(
        profile_name="graph-app",
        profile_type=ProfileType.APP,
        authority="https://login.microsoftonline.com",
        tenant="contoso.onmicrosoft.com",
        client_id="app-client",
        secret="s3cret",
        resource="https://graph.microsoft.com",
    )


@pytest.fixture
def user_request() -> AcquisitionRequest:
    return AcquisitionRequest(
        profile_name="graph-user",
        profile_type=ProfileType.USER,
        authority="https://login.microsoftonline.com",
        tenant="contoso.onmicrosoft.com",
        client_id="user-client",
        scope="openid profile offline_access User.Read",
        token_type=TokenTypePreference.ID_OR_ACCESS,
    )


@pytest.fixture
def live_provider() -> FakeProvider:
    """Scripted provider whose timestamps follow the wall clock."""
    return FakeProvider(SystemClock())


@pytest.fixture
def live_result(live_provider: FakeProvider):
    def factory(**kwargs) -> TokenResult:
        return token_result(live_provider.clock, **kwargs)

    return factory
