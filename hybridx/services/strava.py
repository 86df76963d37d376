"""
HybridX API - Strava Service.

OAuth connection, lazy token refresh, activity access and workout upload
for Strava.
Access tokens are refreshed only when they are about to expire; a
refreshed token is kept for the rest of the service's lifetime (one
request) so several calls do not refresh twice.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx

from hybridx.models.session import StravaActivity, WorkoutSession
from hybridx.models.user import StravaTokens, User
from hybridx.repositories.base import UserRepository
from hybridx.services.cache import CacheService, get_cache_service
from hybridx.utils.dates import as_utc, local_wall_time, utc_now
from hybridx.utils.errors import ExternalServiceError, ValidationError
from settings import settings

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"
API_URL = "https://www.strava.com/api/v3"
SCOPES = "read,activity:read_all,activity:write"
STATE_KEY_PREFIX = "oauth_state:strava"
REQUEST_TIMEOUT = 15.0


# First keyword found in the workout title wins
SPORT_TYPE_KEYWORDS = (
    ("run", "Run"),
    ("cycle", "Ride"),
    ("bike", "Ride"),
    ("swim", "Swim"),
    ("row", "Rowing"),
    ("strength", "WeightTraining"),
    ("crossfit", "Crossfit"),
    ("yoga", "Yoga"),
    ("pilates", "Pilates"),
    ("walk", "Walk"),
    ("hike", "Hike"),
)


def strava_sport_type(title: str) -> str:
    lowered = title.lower()
    for keyword, sport_type in SPORT_TYPE_KEYWORDS:
        if keyword in lowered:
            return sport_type
    return "Workout"


def generate_state() -> str:
    """Generate random state for OAuth CSRF protection."""
    return secrets.token_urlsafe(32)


def tokens_from_response(payload: dict, previous: Optional[StravaTokens] = None) -> StravaTokens:
    """Build tokens from a Strava token endpoint response."""
    athlete = payload.get("athlete") or {}
    return StravaTokens(
        access_token=payload["access_token"],
        refresh_token=payload["refresh_token"],
        expires_at=datetime.fromtimestamp(payload["expires_at"], tz=timezone.utc),
        scope=payload.get("scope") or (previous.scope if previous else ""),
        athlete_id=athlete.get("id") or (previous.athlete_id if previous else None),
    )


class StravaService:
    """Strava OAuth and API client for one request."""

    def __init__(
        self,
        users: UserRepository,
        cache: Optional[CacheService] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.users = users
        self.cache = cache or get_cache_service()
        self._transport = transport
        self._token_cache: Dict[str, StravaTokens] = {}
        self.refresh_buffer = timedelta(seconds=settings.STRAVA_TOKEN_REFRESH_BUFFER_SECONDS)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)

    def _require_configured(self) -> None:
        if not settings.strava_configured:
            raise ExternalServiceError("strava", "Strava is not configured")

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def get_authorization_url(self, user_id: str) -> str:
        """Generate the Strava authorization URL and remember its state."""
        self._require_configured()
        state = generate_state()
        stored = await self.cache.set(
            f"{STATE_KEY_PREFIX}:{state}",
            user_id,
            ttl_seconds=settings.CACHE_TTL_OAUTH_STATE,
        )
        if not stored:
            raise ExternalServiceError("strava", "Could not start Strava connection. Please try again.")

        params = {
            "client_id": settings.STRAVA_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": settings.STRAVA_REDIRECT_URI,
            "approval_prompt": "auto",
            "scope": SCOPES,
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def verify_state(self, state: str, user_id: str) -> None:
        """States are single use and bound to the user that requested them."""
        owner = await self.cache.pop(f"{STATE_KEY_PREFIX}:{state}")
        if owner != user_id:
            raise ValidationError("Invalid or expired Strava authorization state")

    async def exchange_code(self, user_id: str, code: str, state: str) -> StravaTokens:
        """Exchange an authorization code and store the tokens on the user."""
        self._require_configured()
        await self.verify_state(state, user_id)

        try:
            async with self._client() as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": settings.STRAVA_CLIENT_ID,
                        "client_secret": settings.STRAVA_CLIENT_SECRET,
                        "code": code,
                        "grant_type": "authorization_code",
                    },
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Strava code exchange rejected for user {user_id}: {e.response.status_code}")
            raise ValidationError("Strava authorization failed", detail=e.response.text)
        except httpx.HTTPError as e:
            logger.error(f"Strava code exchange failed for user {user_id}: {e}")
            raise ExternalServiceError("strava", "Could not reach Strava", detail=str(e))

        tokens = tokens_from_response(payload)
        await self.users.update_fields(user_id, strava=tokens)
        self._token_cache[user_id] = tokens
        logger.info(f"Connected Strava athlete {tokens.athlete_id} for user {user_id}")
        return tokens

    async def disconnect(self, user_id: str) -> None:
        await self.users.update_fields(user_id, strava=None)
        self._token_cache.pop(user_id, None)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _needs_refresh(self, tokens: StravaTokens) -> bool:
        return as_utc(tokens.expires_at) - utc_now() < self.refresh_buffer

    async def get_valid_access_token(self, user: User) -> str:
        """
        Return an access token valid for at least the refresh buffer.

        Raises:
            ExternalServiceError: not connected, or the refresh failed.
                ``reconnect_required`` is set when Strava rejected the
                refresh token.
        """
        tokens = self._token_cache.get(user.id) or user.strava
        if tokens is None:
            raise ExternalServiceError(
                "strava", "Strava is not connected", reconnect_required=True
            )
        if not self._needs_refresh(tokens):
            return tokens.access_token

        self._require_configured()
        logger.info(f"Refreshing Strava token for user {user.id}")
        try:
            async with self._client() as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": settings.STRAVA_CLIENT_ID,
                        "client_secret": settings.STRAVA_CLIENT_SECRET,
                        "grant_type": "refresh_token",
                        "refresh_token": tokens.refresh_token,
                    },
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Strava token refresh rejected for user {user.id}: {e.response.status_code}")
            raise ExternalServiceError(
                "strava",
                "Could not refresh Strava access. Please reconnect your Strava account.",
                detail=e.response.text,
                reconnect_required=e.response.status_code in (400, 401, 403),
            )
        except httpx.HTTPError as e:
            logger.error(f"Strava token refresh failed for user {user.id}: {e}")
            raise ExternalServiceError("strava", "Could not reach Strava", detail=str(e))

        refreshed = tokens_from_response(payload, previous=tokens)
        await self.users.update_fields(user.id, strava=refreshed)
        self._token_cache[user.id] = refreshed
        return refreshed.access_token

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def _get(self, user: User, path: str, params: Optional[dict] = None):
        access_token = await self.get_valid_access_token(user)
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{API_URL}{path}",
                    headers={"Authorization": f"Bearer {access_token}"},
                    params=params,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Strava GET {path} failed for user {user.id}: {status_code}")
            if status_code == 404:
                raise ValidationError("Strava activity not found")
            raise ExternalServiceError(
                "strava",
                "Failed to fetch activities from Strava",
                detail=e.response.text,
                reconnect_required=status_code == 401,
            )
        except httpx.HTTPError as e:
            logger.error(f"Strava GET {path} failed for user {user.id}: {e}")
            raise ExternalServiceError("strava", "Could not reach Strava", detail=str(e))

    async def upload_session(self, user: User, session: WorkoutSession, tz_name: Optional[str] = None) -> str:
        """
        Create a manual Strava activity for a finished session.

        Strava reads ``start_date_local`` as the athlete's wall-clock time, so
        the start is converted to ``tz_name`` (UTC when unset).

        Returns:
            str: Id of the new Strava activity.

        Raises:
            ValidationError: session unfinished or already uploaded, or an
                unknown timezone.
        """
        if session.uploaded_to_strava:
            raise ValidationError("Workout already uploaded to Strava", detail=session.strava_id)
        if not session.is_finished:
            raise ValidationError("Cannot upload an incomplete workout")

        started_at = as_utc(session.started_at)
        activity = {
            "name": session.workout_title,
            "sport_type": strava_sport_type(session.workout_title),
            "start_date_local": local_wall_time(started_at, tz_name).isoformat(),
            "elapsed_time": max(int((as_utc(session.finished_at) - started_at).total_seconds()), 60),
            "description": f"Workout from HybridX.\n\nNotes:\n{session.notes or 'No notes.'}",
            "trainer": True,
        }

        access_token = await self.get_valid_access_token(user)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{API_URL}/activities",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=activity,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Strava upload failed for session {session.id}: {e.response.status_code}")
            raise ExternalServiceError(
                "strava",
                "Failed to upload workout to Strava",
                detail=e.response.text,
                reconnect_required=e.response.status_code == 401,
            )
        except httpx.HTTPError as e:
            logger.error(f"Strava upload failed for session {session.id}: {e}")
            raise ExternalServiceError("strava", "Could not reach Strava", detail=str(e))

        logger.info(f"Uploaded session {session.id} to Strava as activity {payload['id']}")
        return str(payload["id"])

    async def list_activities(self, user: User, per_page: int = 30, page: int = 1) -> List[StravaActivity]:
        """Recent activities, newest first; records the sync time."""
        payload = await self._get(user, "/athlete/activities", {"per_page": per_page, "page": page})
        await self.users.update_fields(user.id, last_strava_sync=utc_now())
        return [StravaActivity.model_validate(item) for item in payload]

    async def get_activity(self, user: User, activity_id: int) -> StravaActivity:
        payload = await self._get(user, f"/activities/{activity_id}")
        return StravaActivity.model_validate(payload)
