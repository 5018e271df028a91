"""
subfetch - Configuration Module
"""
from typing import List, Optional

from pydantic_settings import BaseSettings

from .options import ChainConfig, MergeConfig, ParserConfig, RetryConfig, ServiceConfig


class Settings(BaseSettings):
    """Application settings (env prefix SUBFETCH_)"""

    # Application
    APP_NAME: str = "subfetch"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Optional[str] = None

    # Fetching
    DEFAULT_TIMEOUT: float = 30.0  # Seconds
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    MAX_ATTEMPTS: int = 3
    BASE_DELAY: float = 1.0
    MAX_DELAY: float = 10.0
    ENABLE_RETRY: bool = True
    ENABLE_CHAIN: bool = True
    ENABLE_MERGING: bool = True

    # Retrieval chain
    STRATEGIES: List[str] = ["extension", "background", "content_script", "direct"]
    PROXY_ENDPOINT: Optional[str] = None  # Relay for the "proxy" strategy
    CHANNEL_URL: Optional[str] = None  # Remote privileged fetch endpoint base URL

    # Proxy Settings (for httpx)
    PROXY_URL: Optional[str] = None

    # Merging
    MERGE_STRATEGY: str = "time"  # time, speaker, content
    MERGE_MAX_GAP: float = 2.0
    MERGE_MIN_DURATION: float = 0.5
    MERGE_MAX_DURATION: float = 10.0

    # Cache
    ENABLE_CACHE: bool = True
    CACHE_MAX_ENTRIES: int = 100
    CACHE_TTL: float = 24 * 60 * 60  # Seconds

    # Metrics
    METRICS_WINDOW: int = 100

    # API Settings
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8890
    API_RATE_LIMIT: str = "60/minute"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    class Config:
        env_prefix = "SUBFETCH_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def to_service_config(self) -> ServiceConfig:
        """Build the immutable pipeline configuration"""
        return ServiceConfig(
            enable_cache=self.ENABLE_CACHE,
            enable_retry=self.ENABLE_RETRY,
            enable_merging=self.ENABLE_MERGING,
            enable_chain=self.ENABLE_CHAIN,
            default_timeout=self.DEFAULT_TIMEOUT,
            max_file_size=self.MAX_FILE_SIZE,
            metrics_window=self.METRICS_WINDOW,
            cache_ttl=self.CACHE_TTL,
            retry=RetryConfig(
                max_attempts=self.MAX_ATTEMPTS,
                base_delay=self.BASE_DELAY,
                max_delay=self.MAX_DELAY,
            ),
            parser=ParserConfig(),
            merge=MergeConfig(
                max_gap=self.MERGE_MAX_GAP,
                min_duration=self.MERGE_MIN_DURATION,
                max_duration=self.MERGE_MAX_DURATION,
                strategy=self.MERGE_STRATEGY,
            ),
            chain=ChainConfig(
                strategies=tuple(self.STRATEGIES),
                timeout=self.DEFAULT_TIMEOUT,
                proxy_endpoint=self.PROXY_ENDPOINT,
            ),
        )


settings = Settings()
