"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Supabase (PostgREST + Storage + Auth) ──────────────────────────────
    supabase_url: str = "http://supabase-kong:8000"
    supabase_anon_key: str = ""
    supabase_timeout: float = 5.0
    videos_bucket: str = "videos"

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def storage_public_url(self) -> str:
        return (
            f"{self.supabase_url.rstrip('/')}/storage/v1/object/public/"
            f"{self.videos_bucket}"
        )

    # ── Feed composition ───────────────────────────────────────────────────
    feed_attempt_limit: int = 70         # ranked attempt ids per load
    feed_challenge_limit: int = 60       # ranked challenge ids per load
    feed_record_batch: int = 70          # max records resolved per entity type
    feed_videos_per_block: int = 4       # challenge block after every N videos
    feed_block_size: int = 3             # challenges per block

    # ── Navigation ─────────────────────────────────────────────────────────
    nav_cooldown_seconds: float = 0.22
    nav_wheel_threshold: float = 18.0

    # ── Sessions ───────────────────────────────────────────────────────────
    max_open_sessions: int = 1000        # whole process; beyond this opens get 429
    max_sessions_per_viewer: int = 5     # a viewer's oldest view is evicted past this

    # ── Publishing ─────────────────────────────────────────────────────────
    attempt_caption_max_chars: int = 180
    attempt_max_upload_mb: int = 200

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    otel_enabled: bool = True
    service_name: str = "thriver-feed-api"
    environment: str = "development"
    log_level: str = "INFO"

    # ── Server ─────────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
