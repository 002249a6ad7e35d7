"""Runtime configuration, env-driven via pydantic-settings.

Reads from a ``.env`` file and ``OCITRUST_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# One week, the lifetime of a proxied repository in the local cache.
DEFAULT_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60


class TrustConfig(BaseSettings):
    """Configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export OCITRUST_LOG_LEVEL=DEBUG
        export OCITRUST_GRAPH_ROOT=/var/lib/ocitrust/storage
        export OCITRUST_KEYRING_PATH=/etc/ocitrust/keys
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="OCITRUST_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Local content store locator
    graph_driver: str = "vfs"
    graph_root: Path = Path(".ocitrust/storage")
    run_root: Path = Path(".ocitrust/run")
    graph_options: list[str] = []

    # Trust
    keyring_path: Path = Path(".ocitrust/keys")

    # Codec
    digest_algorithm: str = "sha256"
    blob_chunk_size: int = 1024 * 1024

    # Proxy cache
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS


# Module-level singleton; import as `from ocitrust.config import config`
config = TrustConfig()
