"""Tests for the device code flow controller."""

import io

import pytest

from tokengen.auth.device_flow import (
    SLOW_DOWN_INCREMENT_SECONDS,
    DeviceCodeFlowController,
    DeviceFlowState,
)
from tokengen.models.token import PollOutcome, PollStatus
from tokengen.utils.exceptions import DeviceFlowCancelled, DeviceFlowExpired, ProviderUnavailable

PENDING = PollOutcome(status=PollStatus.PENDING, error="authorization_pending")
SLOW_DOWN = PollOutcome(status=PollStatus.SLOW_DOWN, error="slow_down")


class RecordingLauncher:
    def __init__(self, works: bool = True):
        self.works = works
        self.copied = []
        self.opened = []

    def copy_to_clipboard(self, text):
        self.copied.append(text)
        return self.works

    def open_browser(self, url):
        self.opened.append(url)
        return self.works


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def controller(provider, clock, stream) -> DeviceCodeFlowController:
    return DeviceCodeFlowController(provider, clock, RecordingLauncher(), stream)


class TestCompletion:
    def test_completes_after_pending_polls(self, controller, provider, clock, make_result, user_request):
        result = make_result(id_token="id-1", refresh_token="rt-1")
        provider.poll_outcomes = [PENDING, PENDING, PollOutcome(status=PollStatus.COMPLETED, result=result)]

        assert controller.run(user_request) == result
        assert controller.state == DeviceFlowState.COMPLETED
        assert provider.call_names().count("device_code_poll") == 3
        assert clock.sleeps == [5, 5]

    def test_scope_is_passed_to_start(self, controller, provider, make_result, user_request):
        provider.poll_outcomes = [PollOutcome(status=PollStatus.COMPLETED, result=make_result())]
        controller.run(user_request)
        name, kwargs = provider.calls[0]
        assert name == "device_code_start"
        assert kwargs["scope"] == user_request.scope


class TestSideChannels:
    def test_copies_code_and_opens_browser(self, provider, clock, stream, make_result, user_request):
        launcher = RecordingLauncher()
        provider.poll_outcomes = [PollOutcome(status=PollStatus.COMPLETED, result=make_result())]

        DeviceCodeFlowController(provider, clock, launcher, stream).run(user_request)

        assert launcher.copied == ["ABCD-EFGH"]
        assert launcher.opened == ["https://microsoft.com/devicelogin"]
        assert "copied to clipboard" in stream.getvalue()

    def test_failing_side_channels_still_print_code(
        self, provider, clock, stream, make_result, user_request
    ):
        provider.poll_outcomes = [PollOutcome(status=PollStatus.COMPLETED, result=make_result())]

        DeviceCodeFlowController(provider, clock, RecordingLauncher(works=False), stream).run(
            user_request
        )

        output = stream.getvalue()
        assert "https://microsoft.com/devicelogin" in output
        assert "ABCD-EFGH" in output
        assert "copied to clipboard" not in output

    def test_headless_by_default(self, provider, clock, stream, make_result, user_request):
        provider.poll_outcomes = [PollOutcome(status=PollStatus.COMPLETED, result=make_result())]
        controller = DeviceCodeFlowController(provider, clock, stream=stream)
        controller.run(user_request)
        assert "ABCD-EFGH" in stream.getvalue()


class TestSlowDown:
    def test_slow_down_increases_interval(self, controller, provider, clock, make_result, user_request):
        provider.poll_outcomes = [
            PENDING,
            SLOW_DOWN,
            PENDING,
            SLOW_DOWN,
            PollOutcome(status=PollStatus.COMPLETED, result=make_result()),
        ]

        controller.run(user_request)

        step = SLOW_DOWN_INCREMENT_SECONDS
        assert clock.sleeps == [5, 5 + step, 5 + step, 5 + 2 * step]

    def test_interval_never_decreases(self, controller, provider, clock, user_request):
        provider.poll_outcomes = [SLOW_DOWN, PENDING, SLOW_DOWN] + [PENDING] * 500

        with pytest.raises(DeviceFlowExpired):
            controller.run(user_request)

        # The last wait may be clipped to the deadline; all others are monotonic
        waits = clock.sleeps[:-1]
        assert waits == sorted(waits)
        assert min(waits) >= 5


class TestExpiry:
    def test_polling_stops_at_expires_at(self, controller, provider, clock, user_request):
        start = clock.now()
        provider.session_lifetime = 62

        with pytest.raises(DeviceFlowExpired):
            controller.run(user_request)

        deadline = start.timestamp() + 62
        assert all(t.timestamp() < deadline for t in provider.polled_at)
        assert clock.now().timestamp() == deadline
        # 5s spacing over 62s: polls at 0, 5, ..., 60
        assert len(provider.polled_at) == 13
        assert clock.sleeps[-1] == 2
        assert controller.state == DeviceFlowState.EXPIRED

    def test_deadline_holds_with_large_interval(self, controller, provider, clock, user_request):
        provider.session_interval = 600
        provider.session_lifetime = 30

        with pytest.raises(DeviceFlowExpired):
            controller.run(user_request)

        assert clock.sleeps == [30]
        assert len(provider.polled_at) == 1

    def test_expired_token_outcome(self, controller, provider, user_request):
        provider.poll_outcomes = [
            PENDING,
            PollOutcome(status=PollStatus.EXPIRED, error="expired_token"),
        ]
        with pytest.raises(DeviceFlowExpired):
            controller.run(user_request)

    def test_other_provider_error_is_terminal(self, controller, provider, clock, user_request):
        provider.poll_outcomes = [
            PollOutcome(
                status=PollStatus.ERROR,
                error="invalid_grant",
                error_description="AADSTS70000: grant is invalid\nTrace ID: x",
            ),
        ]
        with pytest.raises(DeviceFlowExpired, match="AADSTS70000: grant is invalid$"):
            controller.run(user_request)
        assert clock.sleeps == []


class TestCancellation:
    def test_access_denied_cancels(self, controller, provider, clock, user_request):
        provider.poll_outcomes = [PENDING, PollOutcome(status=PollStatus.DENIED, error="access_denied")]

        with pytest.raises(DeviceFlowCancelled):
            controller.run(user_request)

        assert controller.state == DeviceFlowState.CANCELLED
        assert len(clock.sleeps) == 1

    def test_cancelled_wait_stops_immediately(self, controller, provider, clock, user_request):
        clock.cancel_on_sleep = True

        with pytest.raises(DeviceFlowCancelled):
            controller.run(user_request)

        assert len(provider.polled_at) == 1

    def test_keyboard_interrupt_during_poll(self, controller, provider, user_request):
        provider.poll_outcomes = [PENDING, KeyboardInterrupt()]

        with pytest.raises(DeviceFlowCancelled, match="interrupted"):
            controller.run(user_request)

        assert controller.state == DeviceFlowState.CANCELLED


def test_provider_unavailable_propagates(controller, provider, user_request):
    provider.poll_outcomes = [ProviderUnavailable("connection reset")]
    with pytest.raises(ProviderUnavailable):
        controller.run(user_request)
