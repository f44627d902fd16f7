"""
Hierarchy store connection.

One supabase-py Client per process, built with the service role key. The key
bypasses row-level security, so tenant isolation comes from the scope
predicate the fetcher and mutation gateway add to every hierarchy query.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import urlparse

from supabase import create_client, Client

from hierarchy_service.app.config import Settings, get_settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


class StoreNotConfiguredError(ValueError):
    """Store credentials are missing from settings."""


def store_credentials(settings: Settings) -> Tuple[str, str]:
    """
    Return (url, service role key), naming every missing variable at once.

    Raises:
        StoreNotConfiguredError: If either value is empty
    """
    missing = [
        env_name
        for env_name, value in (
            ("SUPABASE_URL", settings.supabase_url),
            ("SUPABASE_SERVICE_ROLE_KEY", settings.supabase_service_role_key),
        )
        if not value
    ]
    if missing:
        raise StoreNotConfiguredError(f"Hierarchy store is not configured; set {', '.join(missing)}")
    return settings.supabase_url, settings.supabase_service_role_key


def get_supabase_client(settings: Optional[Settings] = None) -> Client:
    """
    Get the process-wide store client, creating it on first use.

    Settings are only read on creation; later calls return the same client
    whatever settings they pass.
    """
    global _client

    if _client is None:
        settings = settings or get_settings()
        url, key = store_credentials(settings)
        _client = create_client(url, key)
        logger.info(
            f"Hierarchy store client ready for {urlparse(url).netloc} "
            f"(levels={settings.hierarchy_levels_table}, nodes={settings.hierarchy_nodes_table}, "
            f"assets={settings.assets_table})"
        )

    return _client


def reset_supabase_client() -> None:
    """Drop the cached client so the next call rebuilds it from settings."""
    global _client
    _client = None
