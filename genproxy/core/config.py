"""
Application configuration.
All settings are loaded from environment variables (or .env).
Missing upstream/collaborator credentials do not stop the process: the proxy starts
and reports the collaborators as unavailable (see Settings.missing_required).
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings

SUBMIT_STRATEGIES = ("multipart", "json")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: comma-separated origins. Empty = allow any origin.
    cors_origins: str = ""

    # ===========================================
    # UPSTREAM GENERATION API
    # ===========================================
    api_key: str = ""  # Required for dispatch
    upstream_base_url: str = "https://api.tu-zi.com"
    # Upstream certificate chain is non-standard; applies to the upstream client only.
    upstream_verify_tls: bool = False
    upstream_timeout: float = 120.0

    # ===========================================
    # ASYNC ENGINE (submit + poll)
    # ===========================================
    async_poll_interval: float = 2.0
    async_poll_max_attempts: int = 60
    async_default_size: str = "16:9"
    async_image_field: str = "image"
    # Ordered, comma-separated: multipart, json
    async_submit_strategies: str = "multipart"

    # ===========================================
    # MODEL REGISTRY
    # ===========================================
    # JSON object merged over the built-in table, e.g.
    # {"flux-pro": {"backend": "async", "path": "/v1/videos", "cost": 8}}
    model_registry_json: str = ""

    # ===========================================
    # IDENTITY / LEDGER / STORAGE (Supabase)
    # ===========================================
    supabase_url: str = ""  # Required
    supabase_service_key: str = ""  # Required
    storage_bucket: str = "ai-images"
    storage_prefix: str = "temp"
    collaborator_timeout: float = 10.0

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("upstream_base_url", "supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @field_validator("async_poll_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("async_poll_max_attempts must be at least 1")
        return v

    @field_validator("async_submit_strategies")
    @classmethod
    def validate_strategies(cls, v: str) -> str:
        names = [s.strip().lower() for s in v.split(",") if s.strip()]
        if not names:
            raise ValueError("async_submit_strategies must name at least one strategy")
        unknown = [n for n in names if n not in SUBMIT_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown submit strategies: {', '.join(unknown)}")
        return ",".join(names)

    @property
    def submit_strategy_names(self) -> list[str]:
        return self.async_submit_strategies.split(",")

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def missing_required(self) -> list[str]:
        """Names of required env variables that are not set."""
        required = {
            "API_KEY": self.api_key,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_KEY": self.supabase_service_key,
        }
        return [name for name, value in required.items() if not value]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
