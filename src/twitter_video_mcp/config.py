from functools import lru_cache

from pydantic_settings import BaseSettings

from twitter_video_mcp import __version__


class Settings(BaseSettings):
    """Environment-driven configuration for the video service."""

    # Target web app
    TWITTER_HOST: str = "twitter.com"
    TWITTER_BUNDLE_CDN: str = "https://abs.twimg.com"

    # DevTools endpoint of the user's logged-in browser (Chrome started with
    # --remote-debugging-port=9222). The page probe attaches, it never launches.
    BROWSER_CDP_URL: str = "http://localhost:9222"

    # Persistent environment cache
    STORE_PATH: str = "~/.twitter_video_mcp/store.json"
    EXTENSION_VERSION: str = __version__

    # Sent as `user-agent` on the GraphQL call; should match the attached browser
    USER_AGENT: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    DOWNLOAD_DIR: str = "downloads"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def twitter_origin(self) -> str:
        return f"https://{self.TWITTER_HOST}"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


# Convenience instance for modules that import `settings` directly.
settings: Settings = get_settings()
