"""
Shared types for the Pet Store load tester.
============================================
Data model, run configuration, shared progress counters and the error
taxonomy used by the executor, scenario, orchestrator and report modules.
"""

import asyncio
import os
import time
from dataclasses import dataclass, field, asdict
from typing import Optional, Tuple, Dict, Any


TIMEOUT_ERROR = "timeout"

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE")


# =============================================================================
# ERRORS
# =============================================================================

class LoadTestError(Exception):
    """Base class for load tester errors."""


class ConfigurationError(LoadTestError):
    """Invalid run configuration or scenario definition."""


class UnsupportedMethodError(ConfigurationError):
    def __init__(self, method: str):
        super().__init__(f"Unsupported HTTP method: {method}")
        self.method = method


class MalformedPayloadError(ConfigurationError):
    pass


# =============================================================================
# ENDPOINTS
# =============================================================================

DEFAULT_ENDPOINTS = {
    "petlistadoptions": ("PETLIST_ENDPOINT", "http://localhost:8080/api/adoptionlist/"),
    "petsearch": ("PETSEARCH_ENDPOINT", "http://localhost:8081/api/search"),
    "payforadoption": ("PAYFORADOPTION_ENDPOINT", "http://localhost:8082/api/completeadoption"),
    "petfood": ("PETFOOD_ENDPOINT", "http://localhost:8083/api/foods"),
    "petfoodcart": ("PETFOODCART_ENDPOINT", "http://localhost:8083"),
}


@dataclass(frozen=True)
class Endpoints:
    """Resolved service URLs, read-only for the whole run."""
    petlistadoptions: str
    petsearch: str
    payforadoption: str
    petfood: str
    petfoodcart: str

    @classmethod
    def from_env(cls) -> "Endpoints":
        """Defaults, overridable per endpoint through environment variables."""
        return cls(**{
            name: os.environ.get(env_var, default)
            for name, (env_var, default) in DEFAULT_ENDPOINTS.items()
        })

    def is_empty(self) -> bool:
        return not any(asdict(self).values())


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass(frozen=True)
class RequestOutcome:
    """Result of a single request."""
    method: str
    url: str
    user_id: str
    success: bool
    elapsed_ms: float
    status: int = 0  # 0 when no response was received
    error: Optional[str] = None
    response_data: Optional[Any] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ScenarioResult:
    """All outcomes of one actor's journey, in request order."""
    user_id: str
    requests: Tuple[RequestOutcome, ...]
    elapsed_ms: float
    success: bool
    error: Optional[str] = None

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.requests if not r.success)


@dataclass
class EndpointTally:
    successes: int = 0
    failures: int = 0

    @property
    def total(self) -> int:
        return self.successes + self.failures

    @property
    def success_rate(self) -> float:
        return (self.successes / self.total * 100) if self.total > 0 else 0.0


@dataclass(frozen=True)
class RunSummary:
    """Aggregated statistics for a finished run."""
    total_scenarios: int
    failed_scenarios: int
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_response_ms: float
    duration_seconds: float
    requests_per_second: float
    success_rate: float
    endpoints: Dict[str, EndpointTally] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "summary": {
                "total_scenarios": self.total_scenarios,
                "failed_scenarios": self.failed_scenarios,
                "total_requests": self.total_requests,
                "successful_requests": self.successful_requests,
                "failed_requests": self.failed_requests,
                "success_rate_percent": round(self.success_rate, 2),
                "average_response_ms": round(self.average_response_ms, 2),
                "duration_seconds": round(self.duration_seconds, 3),
                "requests_per_second": round(self.requests_per_second, 2),
            },
            "endpoints": {
                url: {
                    "successes": tally.successes,
                    "failures": tally.failures,
                    "success_rate_percent": round(tally.success_rate, 2),
                }
                for url, tally in self.endpoints.items()
            },
        }


# =============================================================================
# SHARED PROGRESS
# =============================================================================

@dataclass(frozen=True)
class ProgressSnapshot:
    completed: int
    total: int
    requests: int
    failed: int
    elapsed_seconds: float

    @property
    def rps(self) -> float:
        return self.requests / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0

    @property
    def percent(self) -> float:
        return (self.completed / self.total * 100) if self.total > 0 else 100.0


class ProgressState:
    """
    Counters shared by every running scenario and the progress monitor.
    All access goes through the lock.
    """

    def __init__(self, total: int):
        self.total = total
        self.started_at = time.perf_counter()
        self._completed = 0
        self._requests = 0
        self._failed = 0
        self._lock = asyncio.Lock()

    async def record_scenario(self, result: ScenarioResult):
        async with self._lock:
            self._completed += 1
            self._requests += len(result.requests)
            self._failed += result.failed_count

    async def snapshot(self) -> ProgressSnapshot:
        async with self._lock:
            return ProgressSnapshot(
                completed=self._completed,
                total=self.total,
                requests=self._requests,
                failed=self._failed,
                elapsed_seconds=time.perf_counter() - self.started_at,
            )


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class LoadTestConfig:
    """Validated settings for one run."""
    users: int = 10
    concurrent: int = 5
    region: str = "us-east-1"
    dry_run: bool = False
    verbose: bool = False
    rampup_seconds: float = 0
    population: Optional[int] = None
    seed: Optional[int] = None
    request_timeout: float = 10.0
    checkpoint_every: int = 10
    discover: bool = True
    output: Optional[str] = None

    def __post_init__(self):
        if self.users < 1:
            raise ConfigurationError("users must be >= 1")
        if self.concurrent < 1:
            raise ConfigurationError("concurrent must be >= 1")
        if self.rampup_seconds < 0:
            raise ConfigurationError("rampup must be >= 0")
        if self.request_timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
        if self.checkpoint_every < 1:
            raise ConfigurationError("checkpoint_every must be >= 1")
        if self.population is not None and self.population < self.users:
            raise ConfigurationError(
                f"population ({self.population}) must be >= users ({self.users})"
            )

    @property
    def total_scenarios(self) -> int:
        return self.users * self.concurrent
