from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Tuple
from functools import lru_cache
from dotenv import load_dotenv

from models.proxy import ProxyConfig

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Settings
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8191
    LOG_LEVEL: str = "INFO"
    PROJECT_NAME: str = "Scrappey Resolverr"

    # Upstream proxy (authenticated HTTP proxy)
    PROXY_HOST: str = "127.0.0.1"
    PROXY_PORT: int = 1080
    PROXY_USERNAME: Optional[str] = None
    PROXY_PASSWORD: Optional[str] = None

    # Local no-auth bridge the browser talks to
    BRIDGE_HOST: str = "0.0.0.0"
    BRIDGE_PORT: int = 8080

    # Solver fallback
    SCRAPPEY_API_KEY: str = ""
    SCRAPPEY_ENDPOINT: str = "https://publisher.scrappey.com/api/v1"

    # Browser Settings
    WEBDRIVER_URL: str = "http://localhost:9515"
    WINDOW_WIDTH: int = 1280
    WINDOW_HEIGHT: int = 720
    DEFAULT_MAX_TIMEOUT: int = 60000  # in milliseconds
    CHALLENGE_POLL_INTERVAL: float = 1.0  # in seconds

    # Persistence
    DATA_PATH: str = "/data/persistent.json"

    @property
    def browser_proxy_address(self) -> str:
        """The browser always goes through the local bridge, never the upstream"""
        return f"127.0.0.1:{self.BRIDGE_PORT}"

    @property
    def window_size(self) -> Tuple[int, int]:
        return (self.WINDOW_WIDTH, self.WINDOW_HEIGHT)

    def proxy_config(self) -> ProxyConfig:
        return ProxyConfig(
            upstream_host=self.PROXY_HOST,
            upstream_port=self.PROXY_PORT,
            username=self.PROXY_USERNAME,
            password=self.PROXY_PASSWORD,
        )

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings to avoid loading .env file multiple times"""
    return Settings()

settings = get_settings()
