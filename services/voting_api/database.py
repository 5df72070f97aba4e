"""PostgreSQL ballot store."""
import asyncio
import json
import logging
from typing import List, Optional

import asyncpg

from ballot_engine import BallotStore, Candidate, StoreReceipt, StoreUnavailable, Voter

logger = logging.getLogger(__name__)

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS voters (
    voter_id    TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    is_admin    BOOLEAN NOT NULL DEFAULT FALSE,
    has_voted   BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS candidates (
    candidate_id    TEXT PRIMARY KEY,
    display_name    TEXT NOT NULL,
    localized_name  TEXT NOT NULL DEFAULT '',
    image_ref       TEXT,
    vote_count      INTEGER NOT NULL DEFAULT 0 CHECK (vote_count >= 0)
);

CREATE TABLE IF NOT EXISTS ballots (
    voter_id        TEXT PRIMARY KEY REFERENCES voters (voter_id),
    candidate_id    TEXT NOT NULL REFERENCES candidates (candidate_id),
    cast_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE OR REPLACE FUNCTION cast_vote(p_voter_id TEXT, p_candidate_id TEXT)
RETURNS JSON AS $$
DECLARE
    v_has_voted BOOLEAN;
BEGIN
    -- Row lock on the voter: concurrent casts for the same voter queue here
    SELECT has_voted INTO v_has_voted
    FROM voters
    WHERE voter_id = p_voter_id
    FOR UPDATE;

    IF NOT FOUND THEN
        RETURN json_build_object(
            'success', FALSE,
            'reason', 'UnknownVoter',
            'message', 'Invalid Voter ID. Please check and try again.'
        );
    END IF;

    IF v_has_voted THEN
        RETURN json_build_object(
            'success', FALSE,
            'reason', 'AlreadyVoted',
            'message', 'You have already cast your vote'
        );
    END IF;

    PERFORM 1 FROM candidates WHERE candidate_id = p_candidate_id;
    IF NOT FOUND THEN
        RETURN json_build_object(
            'success', FALSE,
            'reason', 'UnknownCandidate',
            'message', 'Candidate not found'
        );
    END IF;

    UPDATE voters SET has_voted = TRUE WHERE voter_id = p_voter_id;
    UPDATE candidates SET vote_count = vote_count + 1 WHERE candidate_id = p_candidate_id;
    INSERT INTO ballots (voter_id, candidate_id) VALUES (p_voter_id, p_candidate_id);

    RETURN json_build_object('success', TRUE, 'message', 'Vote cast successfully');
END;
$$ LANGUAGE plpgsql;
"""


class PostgresBallotStore(BallotStore):
    """Async PostgreSQL store; the cast procedure is the ``cast_vote`` SQL function."""

    def __init__(
        self,
        dsn: str,
        min_size: int = 10,
        max_size: int = 20,
        command_timeout: float = 5.0
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self):
        """Initialize the connection pool and install the schema."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            logger.info("PostgreSQL connection pool initialized successfully")

            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
                logger.info("PostgreSQL schema verified")

        except STORE_ERRORS as e:
            logger.error(f"Failed to initialize PostgreSQL connection pool: {e}")
            raise StoreUnavailable(backend="postgres") from e

    async def fetch_candidates(self) -> List[Candidate]:
        try:
            async with self.pool.acquire() as conn:
                query = """
                    SELECT candidate_id, display_name, localized_name,
                           image_ref, vote_count
                    FROM candidates
                    ORDER BY display_name, candidate_id
                """
                rows = await conn.fetch(query)
                return [Candidate.from_dict(dict(row)) for row in rows]

        except STORE_ERRORS as e:
            logger.error(f"Error fetching candidates: {e}")
            raise StoreUnavailable(backend="postgres") from e

    async def fetch_voters(self, voter_id: str) -> List[Voter]:
        try:
            async with self.pool.acquire() as conn:
                query = """
                    SELECT voter_id, name, is_admin, has_voted
                    FROM voters
                    WHERE voter_id = $1
                """
                rows = await conn.fetch(query, voter_id)
                return [Voter.from_dict(dict(row)) for row in rows]

        except STORE_ERRORS as e:
            logger.error(f"Error fetching voter {voter_id}: {e}")
            raise StoreUnavailable(backend="postgres") from e

    async def count_voters(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM voters")
        except STORE_ERRORS as e:
            logger.error(f"Error counting voters: {e}")
            raise StoreUnavailable(backend="postgres") from e

    async def cast_ballot(self, voter_id: str, candidate_id: str) -> StoreReceipt:
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    raw = await conn.fetchval(
                        "SELECT cast_vote($1, $2)", voter_id, candidate_id
                    )

            return StoreReceipt.from_dict(json.loads(raw))

        except STORE_ERRORS as e:
            logger.error(f"Error casting ballot for voter {voter_id}: {e}")
            raise StoreUnavailable(backend="postgres") from e

    async def check_health(self) -> bool:
        """Check database connection health."""
        try:
            if not self.pool:
                return False
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except STORE_ERRORS as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return False

    async def close(self):
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("PostgreSQL connection pool closed successfully")
