"""Configuration management for haikubot.

Settings are read once at startup from ``HAIKUBOT_*`` environment variables
(and an optional ``.env`` file) and passed explicitly to every component.
"""

from pathlib import Path

import httpx
from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from haikubot.exceptions import ConfigurationError

SUBSCRIBE_REPOS_PATH = "/xrpc/com.atproto.sync.subscribeRepos"

DEFAULT_BLOCKLIST = [
    "did:plc:7n2uogskixiouu4ofz3o4vdf",
    "did:plc:dxx5meybbce2bhqxxviivwhm",
    "did:plc:bb5yxpnjg3ev7zuh7sdg43s6",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        bgs: Relay base URL the firehose is read from
        host: PDS base URL replies are written to
        handle: Bot account handle
        password: Bot account app password (required to run the service)
        heartbeat_url: Optional URL pinged periodically while running
        queue_capacity: Capacity of the bounded event queue
        idle_interval_seconds: Length of one watchdog idle tick
        max_idle_ticks: Consecutive idle ticks before the stream is declared dead
        heartbeat_interval_seconds: Period of the heartbeat ping
        post_max_attempts: Create-record attempts per reply
        post_retry_delay_seconds: Pause between create-record attempts
        restart_delay_seconds: Pause between supervisor iterations
        request_timeout_seconds: Timeout for each XRPC request
        target_collection: Record type that is analyzed
        target_language: Language tag required when a post declares languages
        completion_marker: Tag marking posts that were already answered
        script_pattern: Character class a post must contain at least once
        blocklist: Author DIDs that are never answered
        user_dictionary: Optional tokenizer user dictionary (IPADIC CSV)
    """

    model_config = SettingsConfigDict(
        env_prefix="HAIKUBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Endpoints and credentials
    bgs: str = "https://bsky.network"
    host: str = "https://bsky.social"
    handle: str = "haiku.bsky.social"
    password: str = ""
    heartbeat_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("HEARTBEAT_URL", "HAIKUBOT_HEARTBEAT_URL"),
    )

    # Pipeline
    queue_capacity: int = Field(default=100, gt=0)
    idle_interval_seconds: float = Field(default=10.0, gt=0)
    max_idle_ticks: int = Field(default=60, gt=0)
    heartbeat_interval_seconds: float = Field(default=300.0, gt=0)
    post_max_attempts: int = Field(default=3, gt=0)
    post_retry_delay_seconds: float = Field(default=1.0, ge=0)
    restart_delay_seconds: float = Field(default=0.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Filter rules
    target_collection: str = "app.bsky.feed.post"
    target_language: str = "ja"
    completion_marker: str = "#n575"
    script_pattern: str = "[０-９Ａ-Ｚａ-ｚぁ-ゖァ-ヾ一-鶴]"
    blocklist: list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKLIST))

    # Predicate
    user_dictionary: Path | None = None

    def require_credentials(self) -> None:
        """Fail fast when the service cannot authenticate.

        Raises:
            ConfigurationError: If the bot password is not configured
        """
        if not self.password:
            raise ConfigurationError("HAIKUBOT_PASSWORD is required")


def stream_url(bgs: str) -> str:
    """Build the firehose websocket URL for a relay base URL.

    Args:
        bgs: Relay base URL (e.g., "https://bsky.network")

    Returns:
        The ``wss://`` subscribeRepos URL on the relay's host

    Raises:
        ConfigurationError: If the URL has no host

    Example:
        >>> stream_url("https://bsky.network")
        'wss://bsky.network/xrpc/com.atproto.sync.subscribeRepos'
    """
    try:
        url = httpx.URL(bgs)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"invalid relay URL: {bgs!r}") from e
    if not url.host:
        raise ConfigurationError(f"invalid relay URL: {bgs!r}")
    netloc = url.host if url.port is None else f"{url.host}:{url.port}"
    return f"wss://{netloc}{SUBSCRIBE_REPOS_PATH}"


def read_settings(**overrides) -> Settings:
    """Build settings, reporting malformed values as a configuration error.

    Raises:
        ConfigurationError: If a value fails to parse or validate
    """
    try:
        return Settings(**overrides)
    except (ValidationError, SettingsError) as e:
        raise ConfigurationError(f"invalid settings: {e}") from e


def load_settings(**overrides) -> Settings:
    """Load and validate settings for the long-running service.

    Args:
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Settings: Validated application settings

    Raises:
        ConfigurationError: If a value is malformed, the password is missing
            or the relay URL is invalid
    """
    settings = read_settings(**overrides)
    settings.require_credentials()
    stream_url(settings.bgs)
    return settings
