"""
Tests for the Redis repositories against in-memory doubles of the
Redis client and the redisvl search index.
"""

import json

import pytest
import redis

from buyer_insights.entities import CacheStatus, RecommendationRecord, RecommendedAction
from buyer_insights.repositories import RedisArtifactRepository, RedisRecommendationRepository
from buyer_insights.repositories import redis_recommendation_repository


class FakePipeline:
    def __init__(self, client):
        self._client = client
        self._ops = []

    def hset(self, key, field=None, value=None, mapping=None):
        self._ops.append(("hset", key, field, value, mapping))

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))

    def execute(self):
        for op in self._ops:
            if op[0] == "hset":
                self._client.hset(op[1], op[2], op[3], mapping=op[4])
            else:
                self._client.expirations[op[1]] = op[2]
        self._ops = []


class FakeRedis:
    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.expirations: dict[str, int] = {}
        self.down = False

    def hset(self, key, field=None, value=None, mapping=None):
        row = self.hashes.setdefault(key, {})
        if mapping:
            row.update(mapping)
        if field is not None:
            row[field] = value

    def hget(self, key, field):
        value = self.hashes.get(key, {}).get(field)
        return value.encode() if isinstance(value, str) else value

    def pipeline(self):
        return FakePipeline(self)

    def ping(self):
        if self.down:
            raise redis.ConnectionError("down")
        return True


class FakeIndex:
    """Evaluates the repository's filters in Python instead of RediSearch."""

    def __init__(self, client: FakeRedis):
        self._client = client

    def create(self, overwrite=False):
        pass

    def paginate(self, query, page_size=30):
        yield [{"id": key, **row} for key, row in self._client.hashes.items() if query.filter_expression(row)]


class Predicate:
    def __init__(self, test):
        self._test = test

    def __call__(self, row):
        return self._test(row)

    def __and__(self, other):
        return Predicate(lambda row: self(row) and other(row))


class FakeTag:
    def __init__(self, field):
        self._field = field

    def __eq__(self, value):
        return Predicate(lambda row: row.get(self._field) == value)


class FakeNum:
    def __init__(self, field):
        self._field = field

    def __gt__(self, value):
        return Predicate(lambda row: float(row[self._field]) > value)


class FakeFilterQuery:
    def __init__(self, filter_expression=None, return_fields=None, num_results=10):
        self.filter_expression = filter_expression


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def repository(fake_redis, monkeypatch):
    class FakeSearchIndex:
        @classmethod
        def from_dict(cls, schema, redis_client=None):
            assert schema["index"]["name"] == "test_recommendations"
            return FakeIndex(redis_client)

    monkeypatch.setattr(redis_recommendation_repository, "SearchIndex", FakeSearchIndex)
    monkeypatch.setattr(redis_recommendation_repository, "FilterQuery", FakeFilterQuery)
    monkeypatch.setattr(redis_recommendation_repository, "Tag", FakeTag)
    monkeypatch.setattr(redis_recommendation_repository, "Num", FakeNum)
    return RedisRecommendationRepository(redis_client=fake_redis, index_name="test_recommendations", retention=600)


def _record(subject_id, created_at, ttl=3600):
    return RecommendationRecord(
        subject_id=subject_id,
        actions=(RecommendedAction("1", "Tour homes", "Plan tours"),),
        created_at=created_at,
        expires_at=created_at + ttl,
    )


def test_insert_writes_hash_with_retention(repository, fake_redis):
    key = repository.insert(_record("buyer-a", 1000.0))

    assert key.startswith("test_recommendations:buyer-a:")
    row = fake_redis.hashes[key]
    assert row["status"] == "valid"
    assert json.loads(row["actions_json"])[0]["label"] == "Tour homes"
    assert fake_redis.expirations[key] == 600


def test_mark_stale_then_find(repository, fake_redis):
    repository.insert(_record("buyer-a", 1000.0))
    repository.insert(_record("buyer-b", 1000.0))

    assert repository.mark_stale("buyer-a") == 1
    assert repository.mark_stale("buyer-a") == 0

    valid = repository.find_valid(now=1500.0)
    assert [r.subject_id for r in valid] == ["buyer-b"]
    assert valid[0].actions[0].command == "Plan tours"
    assert valid[0].status is CacheStatus.VALID


def test_find_valid_skips_expired(repository):
    repository.insert(_record("buyer-a", 1000.0, ttl=100))

    assert repository.find_valid(now=1050.0) != []
    assert repository.find_valid(now=1200.0) == []


def test_find_valid_for_subject(repository):
    repository.insert(_record("buyer-a", 1000.0))
    repository.insert(_record("buyer-b", 1000.0))

    rows = repository.find_valid_for_subject("buyer-b", now=1500.0)
    assert [r.subject_id for r in rows] == ["buyer-b"]


def test_health_check(repository, fake_redis):
    assert repository.health_check() is True
    fake_redis.down = True
    assert repository.health_check() is False


def test_artifact_round_trip(fake_redis):
    artifacts = RedisArtifactRepository(redis_client=fake_redis, prefix="test_artifact")
    key = artifacts.save("buyer-a", "Target band: $500K - $560K", "artifact")

    assert key.startswith("test_artifact:buyer-a:")
    assert artifacts.get_text(key) == "Target band: $500K - $560K"
    assert fake_redis.hashes[key]["kind"] == "artifact"
    assert "bands" not in fake_redis.hashes[key]
    assert artifacts.get_text("test_artifact:missing") is None
