"""
Async client session for the voting API.

Keeps a cached copy of the logged-in voter and of the candidate list. The
cache is for display only: the server decides whether a ballot is accepted,
so the cached has-voted flag is never used to allow or refuse a cast.
"""
import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional

import httpx

from ballot_engine import (
    Candidate,
    CastResult,
    ElectionWindow,
    NotAuthenticated,
    PhaseStatus,
    RejectionReason,
    Standings,
    StoreUnavailable,
    SystemClock,
    ValidationError,
    Voter,
    VotingError,
    normalize_identifier,
    phase_ticks,
    resolve_phase,
)
from ballot_engine.errors import error_from_payload

logger = logging.getLogger(__name__)

REJECTION_CODES = {reason.value for reason in RejectionReason}


class VotingSession:
    """
    One voter's session against the voting API.

    Args:
        base_url: API root, e.g. ``http://localhost:8000``
        api_version: Path version segment
        tick_interval: Seconds between local phase re-evaluations
        refresh_delay: Seconds to wait after an accepted cast before reloading
            candidates, to let the read path catch up
        max_retries: Attempts for retryable failures
        retry_delay: Base delay between attempts (multiplied by attempt number)
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_version: str = "v1",
        tick_interval: float = 1.0,
        refresh_delay: float = 1.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock=None
    ):
        self.http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self.prefix = f"/api/{api_version}"
        self.tick_interval = tick_interval
        self.refresh_delay = refresh_delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.clock = clock or SystemClock()

        self.token: Optional[str] = None
        self.voter: Optional[Voter] = None
        self.window: Optional[ElectionWindow] = None
        self.candidates: List[Candidate] = []
        self.counts_visible = False
        self._refresh_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> 'VotingSession':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
        await self.http.aclose()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a request, retrying transport failures and 503 responses.

        Raises:
            VotingError: The error reported by the server
            StoreUnavailable: When every attempt failed with a retryable error
        """
        attempts = max(1, self.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                response = await self.http.request(
                    method, f"{self.prefix}{path}", headers=self._headers(), **kwargs
                )
            except httpx.TransportError as e:
                logger.warning(f"{method} {path} failed (attempt {attempt}/{attempts}): {e}")
                if attempt == attempts:
                    raise StoreUnavailable(reason="connection") from e
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            if response.status_code < 400:
                return response

            error = self._error_from_response(response)
            if error.retryable and attempt < attempts:
                logger.warning(f"{method} {path} retryable {error.code} (attempt {attempt}/{attempts})")
                await asyncio.sleep(self.retry_delay * attempt)
                continue
            raise error

    @staticmethod
    def _error_from_response(response: httpx.Response) -> VotingError:
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if "error" in payload:
            return error_from_payload(payload)
        if response.status_code == 422:
            return ValidationError(str(payload.get("detail", "Invalid request")))
        if response.status_code >= 500:
            return StoreUnavailable(status=response.status_code)
        return VotingError(f"Request failed with status {response.status_code}")

    async def get_phase(self) -> PhaseStatus:
        """Ask the server for the phase and remember its election window."""
        response = await self._request("GET", "/phase")
        data = response.json()
        self.window = ElectionWindow(
            datetime.fromisoformat(data["starts_at"]),
            datetime.fromisoformat(data["ends_at"]),
        )
        return resolve_phase(datetime.fromisoformat(data["server_time"]), self.window)

    async def watch_phase(self) -> AsyncIterator[PhaseStatus]:
        """
        Tick the phase every ``tick_interval`` seconds.

        The window is fetched once; after that each tick is resolved locally.
        """
        if self.window is None:
            await self.get_phase()
        async for status in phase_ticks(self.window, self.clock, self.tick_interval):
            yield status

    async def login(self, voter_id: str) -> Voter:
        """
        Log in with a Voter ID.

        Empty input fails locally with ValidationError and is never sent.
        """
        voter_id = normalize_identifier(voter_id, field="Voter ID")
        response = await self._request("POST", "/login", json={"voter_id": voter_id})
        data = response.json()
        self.token = data["access_token"]
        self.voter = Voter.from_dict(data["voter"])
        logger.info(f"Logged in as {self.voter.voter_id}")
        return self.voter

    def logout(self) -> None:
        self.token = None
        self.voter = None

    async def list_candidates(self) -> List[Candidate]:
        response = await self._request("GET", "/candidates")
        rows = response.json()
        self.counts_visible = any(row.get("vote_count") is not None for row in rows)
        self.candidates = [Candidate.from_dict(row) for row in rows]
        return self.candidates

    async def _refresh_candidates_later(self) -> None:
        await asyncio.sleep(self.refresh_delay)
        try:
            await self.list_candidates()
        except VotingError as e:
            logger.warning(f"Candidate refresh failed: {e.message}")

    async def cast_vote(self, candidate_id: str) -> CastResult:
        """
        Cast this session's ballot.

        Business rejections come back as a rejected CastResult. Retryable
        failures are retried; a retry after the ballot was stored reports
        AlreadyVoted, never a second ballot.
        """
        if self.voter is None:
            raise NotAuthenticated()
        candidate_id = normalize_identifier(candidate_id, field="candidate choice")
        voter_id = self.voter.voter_id

        try:
            await self._request("POST", "/vote", json={"candidate_id": candidate_id})
        except VotingError as e:
            if e.code not in REJECTION_CODES:
                raise
            reason = RejectionReason(e.code)
            if reason is RejectionReason.ALREADY_VOTED:
                self.voter = self.voter.mark_voted()
            return CastResult.reject(voter_id, candidate_id, reason, e.message)

        self.voter = self.voter.mark_voted()
        self._refresh_task = asyncio.create_task(self._refresh_candidates_later())
        return CastResult.accept(voter_id, candidate_id)

    async def get_results(self) -> Standings:
        response = await self._request("GET", "/results")
        data = response.json()
        ranked = [Candidate.from_dict(row) for row in data["candidates"]]
        winner = Candidate.from_dict(data["winner"]) if data.get("winner") else None
        return Standings(
            ranked=ranked,
            winner=winner,
            is_tie=data["is_tie"],
            total_votes=data["total_votes"],
            final=data["final"],
        )
