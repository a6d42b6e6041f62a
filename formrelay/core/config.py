"""
Configuration centralisée pour FormRelay.

Utilise Pydantic Settings pour une validation stricte des variables d'environnement.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration de l'application FormRelay.

    Toutes les variables sont chargées depuis l'environnement ou un fichier .env.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === API Settings ===
    app_name: str = Field(default="FormRelay", description="Nom de l'application")
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environnement d'exécution"
    )
    debug: bool = Field(default=False, description="Mode debug")
    api_host: str = Field(default="0.0.0.0", description="Host de l'API")
    api_port: int = Field(default=8000, ge=1, le=65535, description="Port de l'API")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origines autorisées pour l'API publique (widget embarqué)"
    )

    # === Stockage ===
    storage_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Backend de persistance (memory pour dev/tests)"
    )
    supabase_url: str = Field(default="", description="URL du projet Supabase")
    supabase_key: str = Field(default="", description="Clé anon Supabase")
    supabase_service_key: str = Field(
        default="",
        description="Clé service role Supabase (optionnelle)"
    )

    # === Redis (rate limiting partagé) ===
    redis_url: str = Field(
        default="memory://",
        description="URL Redis; memory:// garde le compteur en mémoire du process"
    )

    # === Rate limiting (fenêtre fixe) ===
    rate_limit_submit_max: int = Field(default=10, ge=1)
    rate_limit_submit_window_ms: int = Field(default=60_000, ge=1)
    rate_limit_config_max: int = Field(default=30, ge=1)
    rate_limit_config_window_ms: int = Field(default=60_000, ge=1)

    # === Dispatch des intégrations ===
    dispatch_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Nombre maximum de tentatives par soumission"
    )
    dispatch_backoff_ms: list[int] = Field(
        default_factory=lambda: [500, 1500],
        description="Attente avant chaque nouvelle tentative (ms)"
    )
    dispatch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout HTTP d'une tentative"
    )
    dispatch_workers: int = Field(default=4, ge=1, le=64)
    dispatch_queue_size: int = Field(
        default=1000,
        ge=0,
        description="Taille max de la file (0 = illimitée)"
    )
    dispatch_shutdown_grace_seconds: float = Field(default=5.0, ge=0)

    # === Widget ===
    section_id_prefix: str = Field(
        default="meform",
        description="Préfixe des identifiants de section calculés"
    )

    # === Audit des soumissions PENDING ===
    pending_audit_interval_minutes: int = Field(default=15, ge=1)
    pending_audit_age_minutes: int = Field(default=30, ge=1)

    @field_validator("supabase_url")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Normalise l'URL Supabase en supprimant le slash final."""
        return v.rstrip("/")

    @field_validator("dispatch_backoff_ms")
    @classmethod
    def validate_backoff(cls, v: list[int]) -> list[int]:
        """Les délais doivent être positifs."""
        if any(delay < 0 for delay in v):
            raise ValueError("Les délais de backoff doivent être >= 0")
        return v

    @model_validator(mode="after")
    def validate_storage(self) -> "Settings":
        """Le backend Supabase exige une URL et une clé."""
        if self.storage_backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError(
                "SUPABASE_URL et SUPABASE_KEY sont requis quand STORAGE_BACKEND=supabase"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Vérifie si l'environnement est en production."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Retourne une instance singleton des settings.

    Utilise lru_cache pour éviter de recharger les settings à chaque appel.
    """
    return Settings()


# Instance globale pour import direct
settings = get_settings()
