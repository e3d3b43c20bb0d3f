"""Interactive device code flow for User profiles.

Flow:
1. Ask the provider for a device code
2. Show the code and URL, copy the code, open the browser (best effort)
3. Poll the token endpoint until the user signs in, declines, or the code
   expires
"""

import logging
import sys
from enum import Enum
from typing import Optional, TextIO

from ..models.request import AcquisitionRequest
from ..models.token import DeviceCodeSession, PollStatus, TokenResult
from ..utils.clock import Clock, SystemClock
from ..utils.exceptions import DeviceFlowCancelled, DeviceFlowExpired
from .base import IdentityProviderClient
from .launcher import HeadlessLauncher, Launcher

logger = logging.getLogger(__name__)

# Added to the poll interval each time the provider answers slow_down (RFC 8628)
SLOW_DOWN_INCREMENT_SECONDS = 5


class DeviceFlowState(str, Enum):
    """States of one device code authorization."""

    INIT = "init"
    AWAITING_USER = "awaiting_user"
    POLLING = "polling"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class DeviceCodeFlowController:
    """Runs one device code authorization to completion."""

    def __init__(
        self,
        client: IdentityProviderClient,
        clock: Optional[Clock] = None,
        launcher: Optional[Launcher] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize the controller.

        Args:
            client: Identity provider client
            clock: Time source and sleeper for the polling loop
            launcher: Clipboard/browser side channels (headless if None)
            stream: Where sign-in instructions are written (stderr if None)
        """
        self.client = client
        self.clock = clock or SystemClock()
        self.launcher = launcher or HeadlessLauncher()
        self.stream = stream
        self.state = DeviceFlowState.INIT
        self.interval: Optional[int] = None

    def run(self, request: AcquisitionRequest) -> TokenResult:
        """
        Acquire tokens for a User request.

        Returns:
            TokenResult including the refresh token, if issued

        Raises:
            DeviceFlowExpired: If the code expires or the provider fails terminally
            DeviceFlowCancelled: If the user declines or interrupts the flow
            ProviderUnavailable: If the provider cannot be reached
        """
        self.state = DeviceFlowState.INIT
        logger.info("Starting device code authentication flow")
        try:
            session = self.client.device_code_start(
                tenant=request.tenant,
                authority=request.authority,
                client_id=request.client_id,
                scope=request.scope or "",
            )
            self.state = DeviceFlowState.AWAITING_USER
            self._prompt_user(session)
            return self._poll_until_done(session)
        except KeyboardInterrupt:
            self.state = DeviceFlowState.CANCELLED
            raise DeviceFlowCancelled("Sign-in interrupted") from None

    def _write(self, text: str = "") -> None:
        print(text, file=self.stream or sys.stderr)

    def _prompt_user(self, session: DeviceCodeSession) -> None:
        copied = self.launcher.copy_to_clipboard(session.user_code)
        opened = self.launcher.open_browser(session.verification_uri)

        self._write("\n" + "=" * 70)
        self._write("AUTHENTICATION REQUIRED")
        self._write("=" * 70)
        self._write(
            f"\n{session.message}\n"
            if session.message
            else f"\nTo sign in, open {session.verification_uri} "
            f"and enter the code {session.user_code}\n"
        )
        # The URL and code are always printed so headless sessions can finish
        self._write(f"URL:  {session.verification_uri}")
        self._write(f"Code: {session.user_code}" + (" (copied to clipboard)" if copied else ""))
        if opened:
            self._write("Browser opened automatically.")
        self._write("=" * 70 + "\n")

    def _poll_until_done(self, session: DeviceCodeSession) -> TokenResult:
        self.state = DeviceFlowState.POLLING
        self.interval = max(session.interval, 0)
        deadline = session.expires_at

        while True:
            if self.clock.now() >= deadline:
                raise self._expired("Device code expired before sign-in completed")

            outcome = self.client.device_code_poll(session)

            if outcome.status == PollStatus.COMPLETED:
                self.state = DeviceFlowState.COMPLETED
                logger.info("Token acquired via device code flow")
                self._write("✓ Authentication successful!\n")
                return outcome.result
            if outcome.status == PollStatus.SLOW_DOWN:
                self.interval += SLOW_DOWN_INCREMENT_SECONDS
                logger.debug(f"Provider asked to slow down, interval now {self.interval}s")
            elif outcome.status == PollStatus.DENIED:
                self.state = DeviceFlowState.CANCELLED
                raise DeviceFlowCancelled("Sign-in was declined")
            elif outcome.status != PollStatus.PENDING:
                # expired_token and any other provider error end the flow
                detail = outcome.error_description or outcome.error or outcome.status.value
                raise self._expired(f"Device code flow failed: {detail.splitlines()[0]}")

            remaining = (deadline - self.clock.now()).total_seconds()
            if remaining <= 0:
                raise self._expired("Device code expired before sign-in completed")
            if self.clock.sleep(min(self.interval, remaining)):
                self.state = DeviceFlowState.CANCELLED
                raise DeviceFlowCancelled("Sign-in cancelled")

    def _expired(self, message: str) -> DeviceFlowExpired:
        self.state = DeviceFlowState.EXPIRED
        return DeviceFlowExpired(message)
