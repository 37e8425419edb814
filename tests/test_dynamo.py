"""Tests for the DynamoDB-backed stores using an in-memory fake table."""

import pytest
from botocore.exceptions import ClientError

from runquest.dynamo import DynamoItemTable
from runquest.errors import DuplicateMedal, SessionExpired, SessionNotFound
from runquest.medals import DynamoMedalStore, MedalIssuer
from runquest.models import ActivityData, TokenResponse
from runquest.sessions import DynamoSessionStore
from tests.fixtures.athlete_fixtures import TOKEN_RESPONSE


class FakeTable:
    """Subset of the boto3 Table API backed by a dict, paging scans by two."""

    def __init__(self):
        self.items: dict[str, dict] = {}

    def put_item(self, Item, ConditionExpression=None):
        if ConditionExpression is not None and Item["pk"] in self.items:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "exists"}},
                "PutItem",
            )
        self.items[Item["pk"]] = dict(Item)
        return {}

    def get_item(self, Key):
        item = self.items.get(Key["pk"])
        return {"Item": dict(item)} if item else {}

    def delete_item(self, Key):
        self.items.pop(Key["pk"], None)
        return {}

    def scan(self, FilterExpression=None, ExclusiveStartKey=None):
        keys = sorted(self.items)
        start = keys.index(ExclusiveStartKey["pk"]) + 1 if ExclusiveStartKey else 0
        page = keys[start : start + 2]
        response = {"Items": [dict(self.items[key]) for key in page]}
        if start + 2 < len(keys):
            response["LastEvaluatedKey"] = {"pk": page[-1]}
        return response


class FakeResource:
    def __init__(self):
        self.table = FakeTable()

    def Table(self, name):
        return self.table


@pytest.fixture
def resource():
    return FakeResource()


@pytest.fixture
def table(resource):
    return DynamoItemTable("runquest-test", boto3_resource=resource)


def token(athlete_id: int, expires_at: int) -> TokenResponse:
    athlete = {**TOKEN_RESPONSE["athlete"], "id": athlete_id}
    return TokenResponse(**{**TOKEN_RESPONSE, "athlete": athlete, "expires_at": expires_at})


class TestDynamoItemTable:
    """Test the JSON item wrapper."""

    async def test_put_get_delete(self, table, resource):
        await table.put("session:abc", {"value": 1})

        assert resource.table.items["session:abc"]["data"] == '{"value": 1}'
        assert await table.get("session:abc") == {"value": 1}

        await table.delete("session:abc")

        assert await table.get("session:abc") is None

    async def test_scan_prefix_follows_pages(self, table):
        for i in range(5):
            await table.put(f"medal:{i}", {"i": i})
        await table.put("session:x", {"i": -1})

        items = await table.scan_prefix("medal:")

        assert sorted(item["i"] for item in items) == [0, 1, 2, 3, 4]

    async def test_only_new_keeps_existing_item(self, table):
        assert await table.put("medal:A", {"owner": 1}, only_new=True)

        assert not await table.put("medal:A", {"owner": 2}, only_new=True)
        assert await table.get("medal:A") == {"owner": 1}

    async def test_other_client_errors_propagate(self, table, resource, monkeypatch):
        def throttled(**kwargs):
            raise ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}},
                "PutItem",
            )

        monkeypatch.setattr(resource.table, "put_item", throttled)

        with pytest.raises(ClientError):
            await table.put("medal:A", {"owner": 1}, only_new=True)


class TestDynamoSessionStore:
    """Test session persistence."""

    async def test_session_survives_new_store(self, table, clock):
        """A fresh store (e.g. another Lambda container) hydrates from the table."""
        first = DynamoSessionStore(table, clock=clock)
        session = await first.create_session(token(42, int(clock.now) + 60))

        second = DynamoSessionStore(table, clock=clock)
        loaded = await second.get_active_session(session.session_id)

        assert loaded.session_id == session.session_id
        assert loaded.access_token == "tok1"
        assert loaded.athlete["username"] == "marianne_t"

    async def test_expiry_applies_after_hydration(self, table, clock):
        store = DynamoSessionStore(table, clock=clock)
        session = await store.create_session(token(42, int(clock.now) + 60))
        clock.advance(61)

        with pytest.raises(SessionExpired):
            await DynamoSessionStore(table, clock=clock).get_active_session(session.session_id)

    async def test_remove_deletes_item(self, table, resource, clock):
        store = DynamoSessionStore(table, clock=clock)
        session = await store.create_session(token(42, int(clock.now) + 60))

        await store.remove_session(session.session_id)

        assert resource.table.items == {}
        with pytest.raises(SessionNotFound):
            await DynamoSessionStore(table, clock=clock).get_session(session.session_id)


class TestDynamoMedalStore:
    """Test medal persistence through the issuer."""

    async def test_issue_verify_and_list(self, table, clock, races):
        sessions = DynamoSessionStore(table, clock=clock)
        issuer = MedalIssuer(DynamoMedalStore(table), signing_key=b"k", clock=clock)
        athlete = await sessions.create_session(token(42, int(clock.now) + 60))
        activity = ActivityData(id=1, name="Run", distance=30000)

        medal = await issuer.issue(athlete, races.get(4), activity)

        reloaded = MedalIssuer(DynamoMedalStore(table), signing_key=b"k", clock=clock)
        assert await reloaded.verify(medal.medal_code.lower()) == medal
        assert reloaded.check_integrity(medal)
        assert [m.medal_code for m in await reloaded.list_by_athlete(42)] == [medal.medal_code]
        stats = await reloaded.stats()
        assert stats.total_medals == 1
        assert stats.unique_athletes == 1

    async def test_claim_blocks_duplicates(self, table, clock, races):
        sessions = DynamoSessionStore(table, clock=clock)
        issuer = MedalIssuer(DynamoMedalStore(table), clock=clock)
        athlete = await sessions.create_session(token(42, int(clock.now) + 60))

        await issuer.issue(athlete, races.get(4), ActivityData(id=1, distance=30000))

        with pytest.raises(DuplicateMedal):
            await issuer.issue(athlete, races.get(4), ActivityData(id=2, distance=30000))

    async def test_concurrent_claim_is_not_overwritten(self, table, clock, races):
        """A second container that missed the claim on read still cannot replace it."""
        sessions = DynamoSessionStore(table, clock=clock)
        issuer = MedalIssuer(DynamoMedalStore(table), clock=clock)
        athlete = await sessions.create_session(token(42, int(clock.now) + 60))
        first = await issuer.issue(athlete, races.get(4), ActivityData(id=1, distance=30000))
        racing = first.model_copy(
            update={"medal_code": "RQ-ARC-2025-042RACINGCODE", "activity_id": 2}
        )

        with pytest.raises(DuplicateMedal) as exc_info:
            await DynamoMedalStore(table).add(racing)

        assert exc_info.value.medal_code == first.medal_code
        assert await table.get("medal:RQ-ARC-2025-042RACINGCODE") is None
        assert await table.get("claim:42:4") == {"medal_code": first.medal_code}

    async def test_taken_code_is_not_overwritten(self, table, clock, races):
        sessions = DynamoSessionStore(table, clock=clock)
        issuer = MedalIssuer(DynamoMedalStore(table), clock=clock)
        athlete = await sessions.create_session(token(42, int(clock.now) + 60))
        first = await issuer.issue(athlete, races.get(4), ActivityData(id=1, distance=30000))
        same_code = first.model_copy(update={"athlete_id": 7})

        assert await DynamoMedalStore(table).add(same_code) is False

        assert (await issuer.verify(first.medal_code)).athlete_id == 42
        assert await table.get("claim:7:4") is None
