"""
FastAPI application for the voting session API.

Client-facing operations: phase, login, candidate listing, vote casting and
results. Every mutation goes through the engine's ballot casting protocol,
which delegates the compound update to the store's atomic procedure.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ballot_engine import (
    BallotStore,
    InMemoryStore,
    NotAuthenticated,
    RejectionReason,
    StoreUnavailable,
    UnknownVoter,
    Voter,
    VotingEngine,
    VotingError,
    VotingNotActive,
)
from ballot_engine.errors import ERRORS_BY_CODE

from .config import Settings, get_settings
from .database import PostgresBallotStore
from .models import (
    CandidateOut,
    CastVoteRequest,
    CastVoteResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    PhaseResponse,
    ResultsResponse,
    VoterOut,
)
from .redis_client import RedisBallotStore
from .security import bearer_token, create_access_token, decode_access_token

logger = logging.getLogger(__name__)

# Prometheus metrics
votes_cast = Counter(
    "votes_cast_total",
    "Total number of cast attempts",
    ["outcome"]
)
logins = Counter(
    "voter_logins_total",
    "Total number of login attempts",
    ["outcome"]
)
cast_latency = Histogram(
    "vote_cast_duration_seconds",
    "Time spent in the ballot casting protocol",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)

ERROR_STATUS = {
    "ValidationError": status.HTTP_400_BAD_REQUEST,
    "NotAuthenticated": status.HTTP_401_UNAUTHORIZED,
    "UnknownVoter": status.HTTP_404_NOT_FOUND,
    "UnknownCandidate": status.HTTP_404_NOT_FOUND,
    "AlreadyVoted": status.HTTP_409_CONFLICT,
    "VotingNotActive": status.HTTP_403_FORBIDDEN,
    "ResultsUnavailable": status.HTTP_403_FORBIDDEN,
    "StoreUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_store(settings: Settings) -> BallotStore:
    """Build the store selected by STORE_BACKEND."""
    if settings.STORE_BACKEND == "postgres":
        return PostgresBallotStore(
            settings.postgres_dsn,
            min_size=settings.POSTGRES_POOL_MIN_SIZE,
            max_size=settings.POSTGRES_POOL_MAX_SIZE,
            command_timeout=settings.STORE_TIMEOUT_SECONDS
        )
    if settings.STORE_BACKEND == "redis":
        return RedisBallotStore(
            settings.redis_url,
            prefix=settings.REDIS_KEY_PREFIX,
            socket_timeout=settings.STORE_TIMEOUT_SECONDS
        )
    logger.warning("Using the in-memory store: ballots are lost on restart")
    return InMemoryStore()


async def voting_error_handler(request: Request, exc: VotingError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content=exc.to_dict(),
        headers=headers
    )


def get_engine(request: Request) -> VotingEngine:
    return request.app.state.engine


async def voter_from_token(request: Request, authorization: Optional[str]) -> Optional[Voter]:
    """
    Resolve the bearer token to a voter re-read from the store.

    Returns None when no token is sent.

    Raises:
        NotAuthenticated: If the token is invalid or expired
        UnknownVoter: If the token names a voter that no longer exists
    """
    token = bearer_token(authorization)
    if token is None:
        return None

    settings: Settings = request.app.state.settings
    voter_id = decode_access_token(token, settings.SECRET_KEY, settings.ALGORITHM)
    return await request.app.state.engine.login(voter_id)


async def optional_voter(
    request: Request,
    authorization: Optional[str] = Header(default=None)
) -> Optional[Voter]:
    """The logged-in voter, or None; a stale or bad token counts as anonymous."""
    try:
        return await voter_from_token(request, authorization)
    except (NotAuthenticated, UnknownVoter) as e:
        logger.info(f"Ignoring session on public endpoint {request.url.path}: {e.code}")
        return None


async def current_voter(
    request: Request,
    authorization: Optional[str] = Header(default=None)
) -> Voter:
    voter = await voter_from_token(request, authorization)
    if voter is None:
        raise NotAuthenticated()
    return voter


async def casting_voter(
    request: Request,
    authorization: Optional[str] = Header(default=None)
) -> Voter:
    """
    The logged-in voter, once the phase allows casting.

    The phase is checked before the store is read, so a cast outside the
    window is refused even when the store is unreachable.
    """
    engine: VotingEngine = request.app.state.engine
    if not engine.phase().is_active:
        votes_cast.labels(outcome=RejectionReason.VOTING_NOT_ACTIVE.value).inc()
        raise VotingNotActive()
    return await current_voter(request, authorization)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[BallotStore] = None,
    clock=None
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Service settings (defaults to the environment)
        store: Ballot store (defaults to the one selected by STORE_BACKEND)
        clock: Clock used for phase resolution (defaults to UTC wall clock)
    """
    settings = settings or get_settings()
    configure_logging(settings)
    store = store or create_store(settings)
    engine = VotingEngine(
        settings.election_window,
        store,
        clock=clock,
        store_timeout=settings.STORE_TIMEOUT_SECONDS
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info(f"Starting {settings.SERVICE_NAME} service...")
        await store.initialize()
        logger.info(
            f"{settings.SERVICE_NAME} started: window "
            f"[{settings.ELECTION_STARTS_AT.isoformat()}, {settings.ELECTION_ENDS_AT.isoformat()}), "
            f"store={settings.STORE_BACKEND}"
        )

        yield

        logger.info(f"Shutting down {settings.SERVICE_NAME} service...")
        await store.close()

    app = FastAPI(
        title="Voting Session API",
        description="Time-windowed, one-ballot-per-voter election voting",
        version=settings.API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(VotingError, voting_error_handler)

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        """Middleware to track request duration."""
        start_time = time.perf_counter()
        response = await call_next(request)
        request_duration.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).observe(time.perf_counter() - start_time)
        return response

    register_routes(app, settings, limiter)
    return app


def register_routes(app: FastAPI, settings: Settings, limiter: Limiter) -> None:
    prefix = f"/api/{settings.API_VERSION}"
    errors = {
        400: {"model": ErrorResponse, "description": "Invalid identifier"},
        401: {"model": ErrorResponse, "description": "Missing or expired session"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    }

    @app.get(f"{prefix}/phase", response_model=PhaseResponse)
    async def get_phase(engine: VotingEngine = Depends(get_engine)) -> PhaseResponse:
        """
        Current voting phase.

        - **waiting**: voting has not opened; includes time until start
        - **active**: ballots accepted; includes time until end
        - **ended**: results are final
        """
        return PhaseResponse.from_status(
            engine.phase(),
            engine.window.starts_at,
            engine.window.ends_at
        )

    @app.post(
        f"{prefix}/login",
        response_model=LoginResponse,
        responses={404: {"model": ErrorResponse, "description": "Unknown voter"}, **errors}
    )
    @limiter.limit(settings.RATE_LIMIT)
    async def login(
        request: Request,
        body: LoginRequest,
        engine: VotingEngine = Depends(get_engine)
    ) -> LoginResponse:
        """
        Identify a voter by Voter ID and open a session.

        Returns a bearer token and the voter record, including whether the
        voter has already voted.
        """
        try:
            voter = await engine.login(body.voter_id)
        except VotingError as e:
            logins.labels(outcome=e.code).inc()
            raise

        logins.labels(outcome="success").inc()
        token = create_access_token(
            voter,
            settings.SECRET_KEY,
            settings.ALGORITHM,
            settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        return LoginResponse(access_token=token, voter=VoterOut.from_voter(voter))

    @app.get(f"{prefix}/me", response_model=VoterOut, responses=errors)
    async def get_me(voter: Voter = Depends(current_voter)) -> VoterOut:
        """The logged-in voter, with an up-to-date has-voted flag."""
        return VoterOut.from_voter(voter)

    @app.get(f"{prefix}/candidates", response_model=list[CandidateOut], responses=errors)
    async def list_candidates(
        engine: VotingEngine = Depends(get_engine),
        viewer: Optional[Voter] = Depends(optional_voter)
    ) -> list[CandidateOut]:
        """
        Candidates sorted by name.

        Vote counts are included once voting has ended, and for admins in
        every phase.
        """
        candidates, show_counts = await engine.list_candidates(viewer)
        return [CandidateOut.from_candidate(c, show_counts) for c in candidates]

    @app.post(
        f"{prefix}/vote",
        response_model=CastVoteResponse,
        status_code=status.HTTP_202_ACCEPTED,
        responses={
            403: {"model": ErrorResponse, "description": "Voting not active"},
            404: {"model": ErrorResponse, "description": "Unknown voter or candidate"},
            409: {"model": ErrorResponse, "description": "Voter already voted"},
            429: {"description": "Rate limit exceeded"},
            **errors
        }
    )
    @limiter.limit(settings.RATE_LIMIT)
    async def cast_vote(
        request: Request,
        body: CastVoteRequest,
        voter: Voter = Depends(casting_voter),
        engine: VotingEngine = Depends(get_engine)
    ) -> CastVoteResponse:
        """
        Cast the logged-in voter's ballot.

        - **candidate_id**: Candidate to vote for

        At most one ballot per voter is ever accepted. A 503 response is safe
        to retry: a retry after a ballot was recorded reports AlreadyVoted.
        """
        start_time = time.perf_counter()
        try:
            result = await engine.cast_vote(voter.voter_id, body.candidate_id)
        except StoreUnavailable:
            votes_cast.labels(outcome="StoreUnavailable").inc()
            raise
        finally:
            cast_latency.observe(time.perf_counter() - start_time)

        if not result.accepted:
            votes_cast.labels(outcome=result.reason.value).inc()
            raise ERRORS_BY_CODE[result.reason.value](result.message)

        votes_cast.labels(outcome="accepted").inc()
        return CastVoteResponse(
            voter_id=result.voter_id,
            candidate_id=result.candidate_id,
            message=result.message
        )

    @app.get(
        f"{prefix}/results",
        response_model=ResultsResponse,
        responses={403: {"model": ErrorResponse, "description": "Results not yet visible"}, **errors}
    )
    async def get_results(
        engine: VotingEngine = Depends(get_engine),
        viewer: Optional[Voter] = Depends(optional_voter)
    ) -> ResultsResponse:
        """
        Ranked results and winner.

        Public once voting has ended; admins may see standings in every phase.
        """
        standings = await engine.results(viewer)
        eligible = settings.ELIGIBLE_VOTERS or await engine.store.count_voters() or None
        return ResultsResponse(
            final=standings.final,
            candidates=[CandidateOut.from_candidate(c, True) for c in standings.ranked],
            winner=CandidateOut.from_candidate(standings.winner, True) if standings.winner else None,
            is_tie=standings.is_tie,
            total_votes=standings.total_votes,
            eligible_voters=eligible
        )

    @app.get(
        f"{prefix}/health",
        response_model=HealthResponse,
        responses={503: {"model": HealthResponse, "description": "Service unhealthy"}}
    )
    async def health_check(engine: VotingEngine = Depends(get_engine)):
        """Check connectivity to the ballot store."""
        store_healthy = await engine.store.check_health()
        services = {settings.STORE_BACKEND: "connected" if store_healthy else "disconnected"}

        response = HealthResponse(
            status="healthy" if store_healthy else "unhealthy",
            services=services,
            timestamp=datetime.now(timezone.utc)
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if store_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json")
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.API_VERSION,
            "status": "running",
            "endpoints": {
                "phase": f"{prefix}/phase",
                "login": f"{prefix}/login",
                "candidates": f"{prefix}/candidates",
                "vote": f"{prefix}/vote",
                "results": f"{prefix}/results",
                "health": f"{prefix}/health",
                "metrics": "/metrics"
            }
        }


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "voting_api.main:create_app",
        factory=True,
        host=_settings.HOST,
        port=_settings.PORT,
        reload=_settings.DEBUG,
        log_level="info"
    )
