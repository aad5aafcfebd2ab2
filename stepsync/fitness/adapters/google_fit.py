"""Google Fit REST API adapter.

Reads the ``com.google.step_count.delta`` dataset for a linked account and
turns each data point into a RawSample.

Environment variables (via stepsync.config.Settings):
    GOOGLE_CLIENT_ID      — OAuth2 client ID
    GOOGLE_CLIENT_SECRET  — OAuth2 client secret
    GOOGLE_REDIRECT_URL   — OAuth2 redirect URI registered for this app

API base: https://www.googleapis.com/fitness/v1

Endpoints used:
    /users/me/dataSources/{dataSourceId}/datasets/{start}-{end}
        — raw points for a nanosecond time range (paged with pageToken)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx

from stepsync.fitness.base import (
    OAuthTokens,
    RawSample,
    FetchWindow,
    SourceAuthorizationError,
    SourceFetchError,
    StepSource,
)
from stepsync.fitness.config_loader import SourceConfig
from stepsync.fitness.window import from_nanos

logger = logging.getLogger("stepsync.fitness.google_fit")

_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"

# Statuses meaning the token itself was refused.
_AUTH_REJECTED = frozenset({401, 403})


class GoogleFitAdapter(StepSource):
    """Google Fit step-count source.

    Handles the OAuth2 authorization-code flow, transparent refresh of an
    expired access token, and paging through the dataset endpoint.
    Credential rejection surfaces as ``SourceAuthorizationError``; every other
    failure as ``SourceFetchError``.
    """

    SOURCE_ID = "google_fit"
    DISPLAY_NAME = "Google Fit"

    def __init__(
        self,
        source_config: SourceConfig,
        client_id: str = "",
        client_secret: str = "",
        redirect_url: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the Google Fit adapter.

        Args:
            source_config:   API base, data source id and scopes.
            client_id:       OAuth2 client ID.
            client_secret:   OAuth2 client secret.
            redirect_url:    OAuth2 redirect URI.
            http_client:     Optional shared httpx client (also used in tests).
            timeout_seconds: Per-request timeout when no client is injected.
        """
        self._config = source_config
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_url = redirect_url
        self._http_client = http_client
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # OAuth helpers
    # ------------------------------------------------------------------

    def authorization_url(self, state: str) -> str:
        """Return the Google consent-screen URL for the configured scopes."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_url,
            "response_type": "code",
            "scope": " ".join(self._config.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return str(httpx.URL(_GOOGLE_AUTH_URL, params=params))

    async def authenticate(self, auth_code: str) -> OAuthTokens:
        """Exchange an OAuth2 authorization code for access + refresh tokens."""
        logger.info("Google Fit: exchanging authorization code")
        data = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": auth_code,
                "redirect_uri": self._redirect_url,
            }
        )
        return self._tokens_from_response(data)

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """Obtain a new access token.

        Raises:
            SourceAuthorizationError: Google answered ``invalid_grant``; the
                refresh token was revoked or expired.
        """
        logger.info("Google Fit: refreshing access token")
        data = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        tokens = self._tokens_from_response(data)
        if tokens.refresh_token is None:
            tokens.refresh_token = refresh_token
        return tokens

    # ------------------------------------------------------------------
    # StepSource interface
    # ------------------------------------------------------------------

    async def fetch_samples(
        self, credential: OAuthTokens, window: FetchWindow
    ) -> list[RawSample]:
        """Fetch all step deltas that ended inside ``window``.

        Refreshes the access token first if it has expired.  The credential
        object is updated in place with the refreshed token.

        Raises:
            SourceAuthorizationError: The credential was rejected.
            SourceFetchError:         Network, timeout, 5xx or malformed data.
        """
        if credential.is_expired():
            if not credential.refresh_token:
                raise SourceAuthorizationError("access token expired and no refresh token")
            refreshed = await self.refresh_token(credential.refresh_token)
            credential.access_token = refreshed.access_token
            credential.refresh_token = refreshed.refresh_token
            credential.expires_at = refreshed.expires_at

        url = (
            f"{self._config.api_base}/users/me/dataSources/"
            f"{self._config.data_source_id}/datasets/{window.dataset_id}"
        )
        logger.debug("Google Fit: fetching dataset %s", window.dataset_id)

        samples: list[RawSample] = []
        page_token: str | None = None
        while True:
            params = {"pageToken": page_token} if page_token else {}
            data = await self._get(url, params, credential.access_token)
            samples.extend(self.parse_points(data, window))
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            "Google Fit: %d samples in window %s", len(samples), window.dataset_id
        )
        return samples

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_points(self, data: dict, window: FetchWindow | None = None) -> list[RawSample]:
        """Convert a dataset response into RawSamples.

        One sample per integer value of each point.  Points ending outside
        ``window`` (when given) are dropped.

        Raises:
            SourceFetchError: A point has no parseable ``endTimeNanos``.
        """
        samples: list[RawSample] = []
        for point in data.get("point") or []:
            try:
                end_ns = int(point["endTimeNanos"])
            except (KeyError, TypeError, ValueError) as exc:
                raise SourceFetchError(f"malformed data point: {point!r}") from exc

            if window is not None and not window.contains_ns(end_ns):
                logger.debug("Google Fit: dropping point outside window (%d)", end_ns)
                continue

            end_time = from_nanos(end_ns)
            for value in point.get("value") or []:
                int_val = value.get("intVal")
                if int_val is None:
                    continue
                samples.append(RawSample(end_time=end_time, value=int(int_val)))
        return samples

    # ------------------------------------------------------------------
    # Private HTTP helpers
    # ------------------------------------------------------------------

    async def _get(self, url: str, params: dict, access_token: str) -> dict:
        """Make an authenticated GET request to the Google Fit API."""
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            if self._http_client:
                response = await self._http_client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("Google Fit API error: GET %s → %d", url, status)
            if status in _AUTH_REJECTED:
                raise SourceAuthorizationError(f"Google Fit rejected the token ({status})") from exc
            raise SourceFetchError(f"Google Fit returned {status}") from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Google Fit request failed: {exc!r}") from exc
        except ValueError as exc:
            raise SourceFetchError("Google Fit returned a non-JSON body") from exc

    async def _token_request(self, form: dict) -> dict:
        """POST to the Google token endpoint."""
        payload = {
            **form,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        try:
            if self._http_client:
                response = await self._http_client.post(_GOOGLE_TOKEN_URL, data=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(_GOOGLE_TOKEN_URL, data=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            error = ""
            try:
                error = exc.response.json().get("error", "")
            except ValueError:
                pass
            if error == "invalid_grant" or exc.response.status_code in _AUTH_REJECTED:
                raise SourceAuthorizationError(
                    f"refresh token is invalid ({error or exc.response.status_code})"
                ) from exc
            raise SourceFetchError(f"token endpoint returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"token request failed: {exc!r}") from exc

    @staticmethod
    def _tokens_from_response(data: dict) -> OAuthTokens:
        expires_in = int(data.get("expires_in", 3600))
        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            token_type=data.get("token_type", "Bearer"),
            scope=(data.get("scope") or "").split(),
        )
