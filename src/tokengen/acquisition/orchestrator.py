"""Decides between cached, refreshed and freshly acquired tokens."""

import logging
from datetime import timedelta
from typing import Optional

from ..auth.base import IdentityProviderClient
from ..auth.device_flow import DeviceCodeFlowController
from ..auth.token_cache import TokenCache
from ..models.request import AcquisitionRequest, ProfileType, TokenKind
from ..models.token import AcquiredToken, TokenRecord, TokenSource
from ..utils.clock import Clock, SystemClock
from ..utils.exceptions import ProviderUnavailable, RefreshTokenInvalid, TokenTypeUnavailable

logger = logging.getLogger(__name__)

# One retry after a transient failure, then fall back to fresh acquisition
MAX_REFRESH_ATTEMPTS = 2


class AcquisitionOrchestrator:
    """Serves a request from cache, by silent refresh, or by a fresh grant."""

    def __init__(
        self,
        cache: TokenCache,
        client: IdentityProviderClient,
        device_flow: Optional[DeviceCodeFlowController] = None,
        clock: Optional[Clock] = None,
        skew_margin: timedelta = timedelta(seconds=60),
        refresh_backoff: float = 1.0,
    ):
        """
        Initialize the orchestrator.

        Args:
            cache: Open token cache
            client: Identity provider client
            device_flow: Controller for interactive User sign-in
            clock: Time source, also used for the refresh backoff
            skew_margin: Tokens expiring within this margin count as expired
            refresh_backoff: Seconds to wait before retrying a failed refresh
        """
        self.cache = cache
        self.client = client
        self.clock = clock or SystemClock()
        self.device_flow = device_flow or DeviceCodeFlowController(client, self.clock)
        self.skew_margin = skew_margin
        self.refresh_backoff = refresh_backoff

    def acquire(self, request: AcquisitionRequest, force_refresh: bool = False) -> AcquiredToken:
        """
        Get a token for the request.

        Args:
            request: Resolved acquisition request
            force_refresh: Skip the cache and silent refresh

        Returns:
            The token selected by the request's token type preference

        Raises:
            TokenGenError: Any error except RefreshTokenInvalid, which is
                handled by falling back to fresh acquisition
        """
        key = request.cache_key
        record = None if force_refresh else self.cache.lookup(key)

        if record is not None:
            for kind in request.token_type.chain:
                if self.cache.is_valid(record, kind, self.skew_margin):
                    logger.info(f"Using cached {kind.value} for {request.display_name}")
                    return self._token(record, kind, TokenSource.CACHE)

            if request.profile_type == ProfileType.USER and record.refresh_token:
                refreshed = self._silent_refresh(request, record)
                if refreshed is not None:
                    self.cache.store(key, refreshed)
                    return self._select(request, refreshed, TokenSource.REFRESH)

        record, source = self._fresh(request)
        self.cache.store(key, record)
        return self._select(request, record, source)

    def _silent_refresh(
        self, request: AcquisitionRequest, record: TokenRecord
    ) -> Optional[TokenRecord]:
        for attempt in range(1, MAX_REFRESH_ATTEMPTS + 1):
            try:
                result = self.client.refresh(
                    tenant=request.tenant,
                    authority=request.authority,
                    client_id=request.client_id,
                    refresh_token=record.refresh_token,
                    scope=request.scope or "",
                )
            except RefreshTokenInvalid as e:
                logger.info(f"Refresh token rejected, signing in again: {e}")
                return None
            except ProviderUnavailable as e:
                if attempt < MAX_REFRESH_ATTEMPTS:
                    logger.warning(
                        f"Token refresh failed, retrying in {self.refresh_backoff}s: {e}"
                    )
                    self.clock.sleep(self.refresh_backoff)
                    continue
                logger.warning(f"Token refresh failed again, signing in again: {e}")
                return None

            logger.info(f"Silently refreshed tokens for {request.display_name}")
            return TokenRecord.from_result(result, self.clock.now(), previous=record)
        return None

    def _fresh(self, request: AcquisitionRequest) -> tuple[TokenRecord, TokenSource]:
        if request.profile_type == ProfileType.APP:
            result = self.client.client_credentials(
                tenant=request.tenant,
                authority=request.authority,
                client_id=request.client_id,
                secret=request.secret,
                resource=request.resource,
            )
            record = TokenRecord.from_result(
                result, self.clock.now(), keep_refresh_token=False
            )
            return record, TokenSource.CLIENT_CREDENTIALS

        result = self.device_flow.run(request)
        return TokenRecord.from_result(result, self.clock.now()), TokenSource.DEVICE_CODE

    def _select(
        self, request: AcquisitionRequest, record: TokenRecord, source: TokenSource
    ) -> AcquiredToken:
        """Apply the preference chain to whatever the provider returned."""
        for kind in request.token_type.chain:
            if record.token(kind):
                return self._token(record, kind, source)
        wanted = " or ".join(kind.value for kind in request.token_type.chain)
        raise TokenTypeUnavailable(f"Provider response contains no {wanted}")

    @staticmethod
    def _token(record: TokenRecord, kind: TokenKind, source: TokenSource) -> AcquiredToken:
        return AcquiredToken(
            value=record.token(kind),
            kind=kind,
            source=source,
            expires_at=record.expires_at(kind),
        )
