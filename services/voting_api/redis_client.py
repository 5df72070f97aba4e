"""Redis ballot store."""
import asyncio
import logging
from typing import List, Optional

import redis.asyncio as redis

from ballot_engine import (
    BallotStore,
    Candidate,
    RejectionReason,
    StoreReceipt,
    StoreUnavailable,
    Voter,
)
from ballot_engine.models import REJECTION_MESSAGES

logger = logging.getLogger(__name__)

STORE_ERRORS = (redis.RedisError, OSError, asyncio.TimeoutError)

# Redis runs a script without interleaving other commands, so the checks and
# both writes below form one indivisible unit.
CAST_VOTE_LUA = """
local voter_key = KEYS[1]
local candidates_key = KEYS[2]
local tally_key = KEYS[3]
local ballots_key = KEYS[4]
local voter_id = ARGV[1]
local candidate_id = ARGV[2]

if redis.call('EXISTS', voter_key) == 0 then
    return {0, 'UnknownVoter'}
end
if redis.call('HGET', voter_key, 'has_voted') == '1' then
    return {0, 'AlreadyVoted'}
end
if redis.call('SISMEMBER', candidates_key, candidate_id) == 0 then
    return {0, 'UnknownCandidate'}
end

redis.call('HSET', voter_key, 'has_voted', '1')
redis.call('HINCRBY', tally_key, candidate_id, 1)
redis.call('HSET', ballots_key, voter_id, candidate_id)
return {1, 'ok'}
"""


class RedisBallotStore(BallotStore):
    """
    Store backed by Redis hashes.

    Key layout, under a configurable prefix:
        {prefix}:voter:{voter_id}          HASH name, is_admin, has_voted
        {prefix}:candidates                SET of candidate ids
        {prefix}:candidate:{candidate_id}  HASH display_name, localized_name, image_ref
        {prefix}:tally                     HASH candidate_id -> vote count
        {prefix}:ballots                   HASH voter_id -> candidate_id
    """

    def __init__(self, url: str, prefix: str = "election", socket_timeout: float = 5.0):
        self.url = url
        self.prefix = prefix
        self.socket_timeout = socket_timeout
        self.client: Optional[redis.Redis] = None
        self.cast_script = None

    def voter_key(self, voter_id: str) -> str:
        return f"{self.prefix}:voter:{voter_id}"

    def candidate_key(self, candidate_id: str) -> str:
        return f"{self.prefix}:candidate:{candidate_id}"

    @property
    def candidates_key(self) -> str:
        return f"{self.prefix}:candidates"

    @property
    def tally_key(self) -> str:
        return f"{self.prefix}:tally"

    @property
    def ballots_key(self) -> str:
        return f"{self.prefix}:ballots"

    async def initialize(self):
        """Connect and register the cast script."""
        try:
            self.client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.socket_timeout,
                socket_connect_timeout=self.socket_timeout
            )
            await self.client.ping()
            self.cast_script = self.client.register_script(CAST_VOTE_LUA)
            logger.info("Redis connection established")
        except STORE_ERRORS as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StoreUnavailable(backend="redis") from e

    async def fetch_candidates(self) -> List[Candidate]:
        try:
            candidate_ids = sorted(await self.client.smembers(self.candidates_key))
            pipe = self.client.pipeline(transaction=True)
            for candidate_id in candidate_ids:
                pipe.hgetall(self.candidate_key(candidate_id))
            pipe.hgetall(self.tally_key)
            replies = await pipe.execute()
        except STORE_ERRORS as e:
            logger.error(f"Redis error fetching candidates: {e}")
            raise StoreUnavailable(backend="redis") from e

        tally = replies[-1]
        candidates = []
        for candidate_id, fields in zip(candidate_ids, replies[:-1]):
            if not fields:
                logger.warning(f"Candidate {candidate_id} listed without details")
                continue
            candidates.append(Candidate(
                candidate_id=candidate_id,
                display_name=fields.get("display_name", candidate_id),
                localized_name=fields.get("localized_name", ""),
                image_ref=fields.get("image_ref") or None,
                vote_count=int(tally.get(candidate_id, 0)),
            ))
        return sorted(candidates, key=lambda c: (c.display_name, c.candidate_id))

    async def fetch_voters(self, voter_id: str) -> List[Voter]:
        try:
            fields = await self.client.hgetall(self.voter_key(voter_id))
        except STORE_ERRORS as e:
            logger.error(f"Redis error fetching voter {voter_id}: {e}")
            raise StoreUnavailable(backend="redis") from e

        if not fields:
            return []
        return [Voter(
            voter_id=voter_id,
            name=fields.get("name", ""),
            is_admin=fields.get("is_admin") == "1",
            has_voted=fields.get("has_voted") == "1",
        )]

    async def count_voters(self) -> int:
        count = 0
        try:
            async for _ in self.client.scan_iter(match=self.voter_key("*"), count=500):
                count += 1
        except STORE_ERRORS as e:
            logger.error(f"Redis error counting voters: {e}")
            raise StoreUnavailable(backend="redis") from e
        return count

    async def cast_ballot(self, voter_id: str, candidate_id: str) -> StoreReceipt:
        try:
            applied, outcome = await self.cast_script(
                keys=[
                    self.voter_key(voter_id),
                    self.candidates_key,
                    self.tally_key,
                    self.ballots_key,
                ],
                args=[voter_id, candidate_id],
            )
        except STORE_ERRORS as e:
            logger.error(f"Redis error casting ballot for voter {voter_id}: {e}")
            raise StoreUnavailable(backend="redis") from e

        if int(applied) == 1:
            return StoreReceipt(success=True, message="Vote cast successfully")

        reason = RejectionReason(outcome)
        return StoreReceipt(success=False, message=REJECTION_MESSAGES[reason], reason=reason)

    async def check_health(self) -> bool:
        try:
            if not self.client:
                return False
            await self.client.ping()
            return True
        except STORE_ERRORS as e:
            logger.error(f"Redis health check error: {e}")
            return False

    async def close(self):
        if self.client:
            await self.client.aclose()
            logger.info("Redis connection closed")
