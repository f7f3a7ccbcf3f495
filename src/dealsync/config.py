"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.dealsync.sync.field_mapping import DEFAULT_AIRTABLE_SCHEMA, DEFAULT_SYNC_CONFIG
from src.dealsync.sync.schemas import AirtableSchema, SyncConfig


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


def _split_csv(value: str) -> frozenset[str]:
    return frozenset(item.strip().lower() for item in value.split(",") if item.strip())


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Monitoring
    SENTRY_DSN: str = ""

    # HubSpot
    HUBSPOT_ACCESS_TOKEN: str = ""
    HUBSPOT_CLIENT_SECRET: str = ""  # Webhook signature verification; empty disables it
    HUBSPOT_BASE_URL: str = "https://api.hubapi.com"

    # Airtable
    AIRTABLE_API_KEY: str = ""
    AIRTABLE_BASE_ID: str = ""
    AIRTABLE_COMPANIES_TABLE: str = "Companies"
    AIRTABLE_CONTACTS_TABLE: str = "Contacts"
    AIRTABLE_PROJECTS_TABLE: str = "Projects"

    # Sync behaviour
    SYNC_ENABLE_UPDATES: bool = True
    SYNC_PROJECT_CREATION_STAGES: str = "closedwon"  # Comma-separated native stage codes
    SYNC_FALLBACK_STATUS: str = "Active"
    SYNC_MAX_ASSOCIATED_CONTACTS: int = 5

    # Transport
    WEBHOOK_MAX_AGE_SECONDS: int = 300
    HTTP_TIMEOUT_SECONDS: float = 10.0

    @property
    def hubspot_configured(self) -> bool:
        return bool(self.HUBSPOT_ACCESS_TOKEN)

    @property
    def airtable_configured(self) -> bool:
        return bool(self.AIRTABLE_API_KEY and self.AIRTABLE_BASE_ID)

    def to_sync_config(self) -> SyncConfig:
        """Build the immutable engine config, starting from the default tables."""
        return DEFAULT_SYNC_CONFIG.model_copy(
            update={
                "project_creation_stages": _split_csv(self.SYNC_PROJECT_CREATION_STAGES),
                "enable_updates": self.SYNC_ENABLE_UPDATES,
                "fallback_status": self.SYNC_FALLBACK_STATUS,
                "max_associated_contacts": self.SYNC_MAX_ASSOCIATED_CONTACTS,
            }
        )

    def to_airtable_schema(self) -> AirtableSchema:
        """Build the Airtable schema with the configured table names."""
        return DEFAULT_AIRTABLE_SCHEMA.model_copy(
            update={
                "companies_table": self.AIRTABLE_COMPANIES_TABLE,
                "contacts_table": self.AIRTABLE_CONTACTS_TABLE,
                "projects_table": self.AIRTABLE_PROJECTS_TABLE,
            }
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
