"""
Service Configuration

Environment-based settings for the QBWC endpoint itself. Storage has its
own settings (qbwc.storage.factory.settings_from_env).

Environment variables:
    QBWC_SERVER_VERSION: serverVersion reply
    QBWC_MIN_CLIENT_VERSION: Oldest Web Connector accepted (e.g. "2.0")
    QBWC_SESSION_TTL: Idle seconds before a session is evicted
    QBWC_CLEANUP_INTERVAL: Seconds between eviction sweeps
    QBWC_STALE_ITEM_SECONDS: Age after which a "processing" item is reclaimed
    QBWC_ENDPOINT_PATH: SOAP endpoint path
    QBWC_PUBLIC_URL: Externally reachable base URL (for the .qwc file)
    QBWC_APP_NAME: Application name shown in the Web Connector
    QBWC_LOG_LEVEL: Logging level name
    QBWC_USERNAME / QBWC_PASSWORD / QBWC_COMPANY_NAME: Optional connection
        to seed when storage holds none
"""

import os
from dataclasses import dataclass, field

from qbwc.dispatch.dispatcher import DEFAULT_MIN_CLIENT_VERSION, DEFAULT_SERVER_VERSION


@dataclass
class ServiceSettings:
    """
    Configuration for the QBWC service.

    Attributes:
        server_version: serverVersion reply
        min_client_version: Oldest Web Connector version accepted
        session_ttl_seconds: Idle time before a session is evicted
        cleanup_interval_seconds: How often idle sessions are swept
        stale_item_seconds: Age of a "processing" item before it is reclaimed
        endpoint_path: Path the SOAP endpoint is mounted on
        public_url: Base URL the Web Connector reaches this service on
        app_name: Name shown in the Web Connector and in time entry notes
        log_level: Root logging level
        bootstrap_username: Web Connector user for a seeded connection
        bootstrap_password: Web Connector password for a seeded connection
        bootstrap_company: Company name for a seeded connection
    """
    server_version: str = DEFAULT_SERVER_VERSION
    min_client_version: float = DEFAULT_MIN_CLIENT_VERSION
    session_ttl_seconds: int = 1800
    cleanup_interval_seconds: float = 60.0
    stale_item_seconds: int = 3600
    endpoint_path: str = "/qbwc"
    public_url: str = "https://localhost:8000"
    app_name: str = "QBWC Sync"
    log_level: str = "INFO"
    bootstrap_username: str | None = None
    bootstrap_password: str | None = field(default=None, repr=False)
    bootstrap_company: str = "QuickBooks Company"

    @property
    def has_bootstrap_connection(self) -> bool:
        return bool(self.bootstrap_username and self.bootstrap_password)


def settings_from_env() -> ServiceSettings:
    """Create ServiceSettings from environment variables."""
    endpoint_path = os.getenv("QBWC_ENDPOINT_PATH", "/qbwc")
    if not endpoint_path.startswith("/"):
        endpoint_path = f"/{endpoint_path}"

    return ServiceSettings(
        server_version=os.getenv("QBWC_SERVER_VERSION", DEFAULT_SERVER_VERSION),
        min_client_version=float(os.getenv("QBWC_MIN_CLIENT_VERSION", str(DEFAULT_MIN_CLIENT_VERSION))),
        session_ttl_seconds=int(os.getenv("QBWC_SESSION_TTL", "1800")),
        cleanup_interval_seconds=float(os.getenv("QBWC_CLEANUP_INTERVAL", "60")),
        stale_item_seconds=int(os.getenv("QBWC_STALE_ITEM_SECONDS", "3600")),
        endpoint_path=endpoint_path.rstrip("/") or "/qbwc",
        public_url=os.getenv("QBWC_PUBLIC_URL", "https://localhost:8000").rstrip("/"),
        app_name=os.getenv("QBWC_APP_NAME", "QBWC Sync"),
        log_level=os.getenv("QBWC_LOG_LEVEL", "INFO"),
        bootstrap_username=os.getenv("QBWC_USERNAME") or None,
        bootstrap_password=os.getenv("QBWC_PASSWORD") or None,
        bootstrap_company=os.getenv("QBWC_COMPANY_NAME", "QuickBooks Company"),
    )
