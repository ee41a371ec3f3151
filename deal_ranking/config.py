"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    port: int = 8002
    service_name: str = "deal-ranking-service"
    environment: str = "development"

    # ── Supabase (PostgREST RPC + tables) ──────────────────────────────────
    supabase_url: str = "http://supabase-kong:8000"
    supabase_anon_key: str = ""
    supabase_timeout_seconds: float = 5.0

    # ── Ranking ────────────────────────────────────────────────────────────
    ranking_default_radius_miles: float = 31.0
    ranking_max_radius_attempts: int = 4     # 31 → 62 → 124 → 248 miles
    ranking_report_threshold: int = 2        # aggregate reports that hide a deal
    ranking_market: str = "OC"               # until market detection exists
    ranking_debug_enabled: bool = False
    # 'server' → get_deal_quality_components RPC, 'local' → raw interaction rows
    ranking_quality_aggregation: Literal["server", "local"] = "server"

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
