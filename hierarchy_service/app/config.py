"""
Configuration for the Asset Hierarchy Service.
Centralized settings with environment variable support.

ENVIRONMENT VARIABLES REFERENCE
===============================

All settings can be configured via environment variables (uppercase, underscore-separated).
Example: `api_port` -> `API_PORT`

APPLICATION SETTINGS:
--------------------
ENVIRONMENT             - Runtime environment: development|test|production (default: "development")
DEBUG                   - Enable debug mode (default: false)
LOG_LEVEL               - Logging level: DEBUG|INFO|WARNING|ERROR|CRITICAL (default: "INFO")

API CONFIGURATION:
-----------------
API_HOST / API_PORT     - uvicorn bind address (default: 0.0.0.0:8000)
CORS_ORIGINS            - Plain URL, comma-separated URLs, or JSON array

TENANCY:
-------
DISABLE_AUTH            - Trust X-Organization-Id/X-User-Id without a bearer token (dev only)
DEV_CROSS_TENANT_ACCESS - Cross-tenant flag used when DISABLE_AUTH is true
CROSS_TENANT_RPC        - Store RPC answering "may this user read every tenant?"
MEMBERSHIP_TABLE        - User-to-organization membership table (default: "user_organizations")

STORE (SUPABASE):
----------------
SUPABASE_URL                - Supabase project URL
SUPABASE_SERVICE_ROLE_KEY   - Service role key for server-side access
HIERARCHY_LEVELS_TABLE      - LevelDef table (default: "hierarchy_levels")
HIERARCHY_NODES_TABLE       - Node table (default: "hierarchy_nodes")
ASSETS_TABLE                - Asset table (default: "assets")
TENANT_COLUMN               - Column carrying the organization id (default: "organization_id")
CONCURRENT_FETCH            - Fetch nodes and assets concurrently (default: true)
"""

import os
from typing import Optional
from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_app_version() -> str:
    """Get app version from env var, falling back to the packaged default."""
    return os.environ.get("APP_VERSION", "1.0.0")


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    Supports .env file loading in development.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="asset-hierarchy-service")
    app_version: str = Field(default_factory=_get_app_version)
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_reload: bool = Field(default=False)

    # CORS, stored as string to avoid pydantic-settings JSON parsing issues
    cors_origins: str = Field(default="http://localhost:3000")

    # Tenancy
    disable_auth: bool = Field(default=False)
    dev_cross_tenant_access: bool = Field(
        default=False,
        description="Cross-tenant read flag granted to every caller when DISABLE_AUTH=true"
    )
    cross_tenant_rpc: str = Field(default="has_cross_project_access")
    membership_table: str = Field(
        default="user_organizations",
        description="User-to-organization membership rows checked for bearer-token callers"
    )

    # Supabase
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)

    # Store layout
    hierarchy_levels_table: str = Field(default="hierarchy_levels")
    hierarchy_nodes_table: str = Field(default="hierarchy_nodes")
    assets_table: str = Field(default="assets")
    tenant_column: str = Field(default="organization_id")

    # Fetching
    concurrent_fetch: bool = Field(
        default=True,
        description="Issue the node and asset fetches concurrently instead of one after the other"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
