"""Settings and configuration."""
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings

# Load .env file if it exists
load_dotenv()


class RatePolicy(BaseModel):
    window_ms: int
    max_requests: int

    model_config = {"frozen": True}


DEFAULT_RATE_POLICIES: Dict[str, RatePolicy] = {
    "/api/admin/server/status": RatePolicy(window_ms=60000, max_requests=120),
    "/api/admin/server/start": RatePolicy(window_ms=60000, max_requests=5),
    "/api/admin/server/stop": RatePolicy(window_ms=60000, max_requests=5),
    "/api/admin/logs": RatePolicy(window_ms=60000, max_requests=30),
    "/api/admin/rcon": RatePolicy(window_ms=60000, max_requests=10),
}


class Settings(BaseSettings):
    # Core
    MODE: str = "dev"  # dev, prod
    LOG_LEVEL: str = "INFO"

    # AWS
    AWS_REGION: str = "us-east-2"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    EC2_INSTANCE_ID: Optional[str] = None
    CLOUDWATCH_LOG_GROUP: str = "blockhaven-minecraft"

    # Game server
    MC_SERVER_IP: Optional[str] = None  # defaults to the instance public IP
    MC_CONTAINER_NAME: str = "blockhaven-mc"
    MCSTATUS_API_URL: str = "https://api.mcstatus.io/v2/status/java"
    MCSTATUS_TIMEOUT_SECONDS: float = 5.0

    # Auth
    ADMIN_GITHUB_USERNAMES: str = ""
    AUTH_SECRET: Optional[str] = None
    AUTH_ISSUER: Optional[str] = None
    AUTH_AUDIENCE: Optional[str] = None
    AUTH_JWKS_URL: Optional[str] = None
    SESSION_COOKIE_NAME: str = "blockhaven_session"
    SESSION_MAX_AGE_SECONDS: int = 7 * 24 * 60 * 60

    # Counter store (absent -> rate limiting disabled, fail open)
    REDIS_URL: Optional[str] = None

    # Rate Limiting
    RATE_LIMIT_BACKEND: Optional[str] = None  # redis, memory; unset -> redis when REDIS_URL is set
    RATE_LIMIT_TTL_BUFFER_SECONDS: int = 60
    RATE_LIMIT_DEFAULT_WINDOW_MS: int = 60000
    RATE_LIMIT_DEFAULT_MAX: int = 60
    RATE_LIMIT_POLICIES: Dict[str, RatePolicy] = DEFAULT_RATE_POLICIES

    # Route protection
    PROTECTED_PAGE_PREFIXES: List[str] = ["/dashboard"]
    PROTECTED_API_PREFIXES: List[str] = ["/api/admin"]
    LOGIN_PATH: str = "/login"

    # RCON over SSM (empirical timings)
    RCON_INITIAL_DELAY_SECONDS: float = 1.5
    RCON_POLL_INTERVAL_SECONDS: float = 1.0
    RCON_MAX_ATTEMPTS: int = 10
    RCON_SUBMIT_TIMEOUT_SECONDS: int = 30

    # Audit
    AUDIT_TTL_SECONDS: int = 90 * 24 * 60 * 60

    # Observability
    TRACING_ENABLED: bool = False
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None

    model_config = {
        "case_sensitive": True,
        "env_file": ".env",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def is_prod(self) -> bool:
        return self.MODE.lower() == "prod"

    @property
    def admin_usernames(self) -> List[str]:
        """Allowlisted GitHub usernames, lowercased."""
        return [u.strip().lower() for u in self.ADMIN_GITHUB_USERNAMES.split(",") if u.strip()]

    @property
    def default_rate_policy(self) -> RatePolicy:
        return RatePolicy(window_ms=self.RATE_LIMIT_DEFAULT_WINDOW_MS, max_requests=self.RATE_LIMIT_DEFAULT_MAX)

    def validate_for_startup(self) -> None:
        """Fail fast on missing required values in prod."""
        if not self.is_prod:
            return
        missing = [name for name in ("EC2_INSTANCE_ID", "AUTH_SECRET") if not getattr(self, name)]
        if missing:
            raise RuntimeError(f"In PROD, required settings missing: {', '.join(missing)}")
