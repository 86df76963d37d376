"""Tests for Strava OAuth and lazy token refresh, against a mocked Strava API."""
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from hybridx.models.session import SessionOrigin, WorkoutSession
from hybridx.models.user import StravaTokens
from hybridx.services.strava import STATE_KEY_PREFIX, StravaService, strava_sport_type
from hybridx.utils.dates import utc_now
from hybridx.utils.errors import ExternalServiceError, ValidationError


class FakeCache:
    """Stands in for CacheService; same get/set/pop contract."""

    def __init__(self):
        self.values = {}

    async def set(self, key, value, ttl_seconds=3600):
        self.values[key] = value
        return True

    async def pop(self, key):
        return self.values.pop(key, None)


class StravaApi:
    """Records requests and answers like the Strava token and activity endpoints."""

    def __init__(self, token_status=200):
        self.requests = []
        self.token_status = token_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "Bad Request"})
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{len(self.token_requests)}",
                    "refresh_token": "refresh-new",
                    "expires_at": int((utc_now() + timedelta(hours=6)).timestamp()),
                    "athlete": {"id": 4242},
                },
            )
        if request.url.path == "/api/v3/activities" and request.method == "POST":
            return httpx.Response(201, json={"id": 555, **json.loads(request.content)})
        if request.url.path == "/api/v3/athlete/activities":
            return httpx.Response(
                200,
                json=[{
                    "id": 1,
                    "name": "Lunch Run",
                    "distance": 5000,
                    "moving_time": 1500,
                    "sport_type": "Run",
                    "start_date": "2024-03-01T12:00:00Z",
                }],
            )
        return httpx.Response(404, json={"message": "Record Not Found"})

    @property
    def token_requests(self):
        return [r for r in self.requests if r.url.path == "/oauth/token"]


def connected(user, expires_in: timedelta):
    return user.model_copy(update={
        "strava": StravaTokens(
            access_token="access-old",
            refresh_token="refresh-old",
            expires_at=utc_now() + expires_in,
            athlete_id=4242,
        )
    })


@pytest.fixture
def api():
    return StravaApi()


@pytest.fixture
def strava(users_repo, api):
    return StravaService(users_repo, cache=FakeCache(), transport=httpx.MockTransport(api))


class TestAccessToken:

    async def test_valid_token_is_not_refreshed(self, strava, api, user):
        token = await strava.get_valid_access_token(connected(user, timedelta(hours=2)))

        assert token == "access-old"
        assert api.requests == []

    async def test_token_near_expiry_is_refreshed(self, strava, api, users_repo, user):
        token = await strava.get_valid_access_token(connected(user, timedelta(seconds=30)))

        assert token == "access-1"
        stored = users_repo.items[user.id].strava
        assert stored.access_token == "access-1"
        assert stored.refresh_token == "refresh-new"
        assert stored.athlete_id == 4242
        assert parse_qs(api.token_requests[0].content.decode())["refresh_token"] == ["refresh-old"]

    async def test_refreshes_once_per_service(self, strava, api, user):
        expiring = connected(user, timedelta(seconds=30))

        first = await strava.get_valid_access_token(expiring)
        second = await strava.get_valid_access_token(expiring)

        assert first == second
        assert len(api.token_requests) == 1

    async def test_rejected_refresh_requires_reconnect(self, users_repo, user):
        strava = StravaService(
            users_repo, cache=FakeCache(), transport=httpx.MockTransport(StravaApi(token_status=401))
        )

        with pytest.raises(ExternalServiceError) as excinfo:
            await strava.get_valid_access_token(connected(user, timedelta(seconds=-10)))

        assert excinfo.value.reconnect_required
        assert excinfo.value.status_code == 502

    async def test_not_connected_requires_reconnect(self, strava, user):
        with pytest.raises(ExternalServiceError) as excinfo:
            await strava.get_valid_access_token(user)

        assert excinfo.value.reconnect_required


class TestOAuth:

    async def test_authorization_url_carries_stored_state(self, strava, user):
        url = await strava.get_authorization_url(user.id)

        query = parse_qs(urlparse(url).query)
        state = query["state"][0]
        assert query["client_id"] == ["12345"]
        assert strava.cache.values[f"{STATE_KEY_PREFIX}:{state}"] == user.id

    async def test_exchange_code_stores_tokens(self, strava, api, users_repo, user):
        url = await strava.get_authorization_url(user.id)
        state = parse_qs(urlparse(url).query)["state"][0]

        tokens = await strava.exchange_code(user.id, "auth-code", state)

        assert tokens.athlete_id == 4242
        assert users_repo.items[user.id].strava == tokens
        assert parse_qs(api.token_requests[0].content.decode())["code"] == ["auth-code"]

    async def test_state_is_single_use(self, strava, user):
        url = await strava.get_authorization_url(user.id)
        state = parse_qs(urlparse(url).query)["state"][0]
        await strava.exchange_code(user.id, "auth-code", state)

        with pytest.raises(ValidationError):
            await strava.exchange_code(user.id, "auth-code", state)

    async def test_state_of_another_user_is_rejected(self, strava, api, user):
        url = await strava.get_authorization_url("someone-else")
        state = parse_qs(urlparse(url).query)["state"][0]

        with pytest.raises(ValidationError):
            await strava.exchange_code(user.id, "auth-code", state)

        assert api.requests == []


class TestActivities:

    async def test_list_activities_records_sync(self, strava, users_repo, user):
        activities = await strava.list_activities(connected(user, timedelta(hours=2)))

        assert [a.name for a in activities] == ["Lunch Run"]
        assert users_repo.items[user.id].last_strava_sync is not None

    async def test_missing_activity(self, strava, user):
        with pytest.raises(ValidationError):
            await strava.get_activity(connected(user, timedelta(hours=2)), 999)


class TestUpload:

    @staticmethod
    def session(**overrides) -> WorkoutSession:
        data = {
            "id": "s1",
            "user_id": "user-1",
            "origin": SessionOrigin.program("prog-1"),
            "workout_date": datetime(2024, 3, 1).date(),
            "workout_title": "Tempo Run",
            "started_at": datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc),
            "finished_at": datetime(2024, 3, 1, 7, 45, tzinfo=timezone.utc),
            "notes": "negative split",
        }
        data.update(overrides)
        return WorkoutSession(**data)

    async def test_upload_finished_session(self, strava, api, user):
        strava_id = await strava.upload_session(connected(user, timedelta(hours=2)), self.session())

        sent = json.loads(api.requests[-1].content)
        assert strava_id == "555"
        assert sent["sport_type"] == "Run"
        assert sent["elapsed_time"] == 45 * 60
        assert "negative split" in sent["description"]

    @pytest.mark.parametrize(
        "tz_name,local_start",
        [(None, "2024-03-01T07:00:00"), ("America/New_York", "2024-03-01T02:00:00"), ("Asia/Tokyo", "2024-03-01T16:00:00")],
    )
    async def test_start_is_sent_as_local_wall_time(self, strava, api, user, tz_name, local_start):
        await strava.upload_session(connected(user, timedelta(hours=2)), self.session(), tz_name)

        sent = json.loads(api.requests[-1].content)
        assert sent["start_date_local"] == local_start

    async def test_unknown_timezone_is_rejected(self, strava, api, user):
        with pytest.raises(ValidationError):
            await strava.upload_session(connected(user, timedelta(hours=2)), self.session(), "Mars/Olympus")

        assert not any(r.method == "POST" for r in api.requests)

    async def test_unfinished_session_is_rejected(self, strava, api, user):
        with pytest.raises(ValidationError):
            await strava.upload_session(connected(user, timedelta(hours=2)), self.session(finished_at=None))

        assert api.requests == []

    async def test_second_upload_is_rejected(self, strava, user):
        uploaded = self.session(uploaded_to_strava=True, strava_id="555")

        with pytest.raises(ValidationError):
            await strava.upload_session(connected(user, timedelta(hours=2)), uploaded)

    @pytest.mark.parametrize(
        "title,sport_type",
        [("Long Run", "Run"), ("Strength Block", "WeightTraining"), ("Engine Builder", "Workout")],
    )
    def test_sport_type_from_title(self, title, sport_type):
        assert strava_sport_type(title) == sport_type
