"""Pytest fixtures for integration tests.

Direct connections (psycopg2, sync redis) seed and inspect data; the stores
under test use their own async drivers.
"""

import os
from typing import Generator, List, Optional, Tuple

import psycopg2
import pytest
import redis
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

from voting_api.database import PostgresBallotStore
from voting_api.redis_client import RedisBallotStore

VOTERS: List[Tuple[str, str, bool]] = [
    ("A123", "Asha", False),
    ("B456", "Bharath", False),
    ("D789", "Deepa", False),
    ("ADM1", "Admin", True),
]

CANDIDATES: List[Tuple[str, str, str, Optional[str]]] = [
    ("C2", "Dishanth", "ದಿಶಾಂತ್", None),
    ("C1", "Abrar", "ಅಬ್ರಾರ್", "/images/abrar.jpg"),
]

REDIS_PREFIX = "election-test"


def postgres_dsn() -> str:
    return (
        f"postgresql://{os.getenv('POSTGRES_USER', 'election_user')}"
        f":{os.getenv('POSTGRES_PASSWORD', 'election_pass')}"
        f"@{os.getenv('POSTGRES_HOST', 'localhost')}:{os.getenv('POSTGRES_PORT', '5432')}"
        f"/{os.getenv('POSTGRES_DB', 'election_db')}"
    )


def redis_url() -> str:
    return (
        f"redis://{os.getenv('REDIS_HOST', 'localhost')}:{os.getenv('REDIS_PORT', '6379')}"
        f"/{os.getenv('REDIS_DB', '0')}"
    )


@pytest.fixture(scope="session")
def postgres_connection():
    """PostgreSQL connection for direct database operations."""
    try:
        conn = psycopg2.connect(postgres_dsn(), connect_timeout=3)
    except psycopg2.OperationalError:
        pytest.skip("PostgreSQL not available")
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)

    yield conn

    conn.close()


@pytest.fixture
def postgres_client(postgres_connection):
    cursor = postgres_connection.cursor()
    yield cursor
    cursor.close()


def seed_postgres(postgres_client) -> None:
    postgres_client.execute("TRUNCATE TABLE ballots, voters, candidates")
    postgres_client.executemany(
        "INSERT INTO voters (voter_id, name, is_admin) VALUES (%s, %s, %s)",
        VOTERS
    )
    postgres_client.executemany(
        "INSERT INTO candidates (candidate_id, display_name, localized_name, image_ref) "
        "VALUES (%s, %s, %s, %s)",
        CANDIDATES
    )


async def open_postgres_store(postgres_client) -> PostgresBallotStore:
    """Store with the schema installed and the sample voters and candidates loaded."""
    store = PostgresBallotStore(postgres_dsn(), min_size=2, max_size=20)
    await store.initialize()
    seed_postgres(postgres_client)
    return store


@pytest.fixture
async def postgres_store(postgres_client) -> PostgresBallotStore:
    store = await open_postgres_store(postgres_client)
    yield store
    await store.close()


@pytest.fixture(scope="session")
def redis_client() -> Generator[redis.Redis, None, None]:
    """Redis client for direct database operations."""
    client = redis.Redis.from_url(redis_url(), decode_responses=True, socket_connect_timeout=3)
    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis not available")

    yield client

    client.close()


def clear_redis(client: redis.Redis) -> None:
    keys = list(client.scan_iter(match=f"{REDIS_PREFIX}:*"))
    if keys:
        client.delete(*keys)


async def open_redis_store(redis_client) -> RedisBallotStore:
    """Store under a test key prefix, loaded with the sample data."""
    clear_redis(redis_client)
    store = RedisBallotStore(redis_url(), prefix=REDIS_PREFIX)

    for voter_id, name, is_admin in VOTERS:
        redis_client.hset(store.voter_key(voter_id), mapping={
            "name": name,
            "is_admin": "1" if is_admin else "0",
            "has_voted": "0",
        })
    for candidate_id, display_name, localized_name, image_ref in CANDIDATES:
        redis_client.sadd(store.candidates_key, candidate_id)
        redis_client.hset(store.candidate_key(candidate_id), mapping={
            "display_name": display_name,
            "localized_name": localized_name,
            "image_ref": image_ref or "",
        })

    await store.initialize()
    return store


@pytest.fixture
async def redis_store(redis_client) -> RedisBallotStore:
    store = await open_redis_store(redis_client)
    yield store
    await store.close()
    clear_redis(redis_client)


@pytest.fixture(params=["postgres", "redis"])
async def ballot_store(request):
    """Each store implementation in turn."""
    if request.param == "postgres":
        store = await open_postgres_store(request.getfixturevalue("postgres_client"))
    else:
        store = await open_redis_store(request.getfixturevalue("redis_client"))

    yield store

    await store.close()
    if request.param == "redis":
        clear_redis(request.getfixturevalue("redis_client"))
