from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings
from dotenv import load_dotenv, find_dotenv
from os import getenv
from typing import Optional

_env_path = find_dotenv(usecwd=True)  # locate a .env file in this folder or parent folders
if _env_path:
    load_dotenv(_env_path)


class Settings(BaseSettings):
    # Remote core API
    CORE_URL: AnyHttpUrl = getenv('CORE_URL', 'http://localhost:1999')
    # access token in `name:secret` form, unset for unauthenticated local cores
    CORE_CLIENT_TOKEN: Optional[str] = getenv('CORE_CLIENT_TOKEN')

    # Transport
    REQUEST_TIMEOUT: int = 30
    REQUEST_MAX_RETRIES: int = 0
    REQUEST_RETRY_DELAY: float = 1.5

    # Paging
    DEFAULT_PAGE_SIZE: int = 25
    AUTOCOMPLETE_PAGE_SIZE: int = 100
    AUTOCOMPLETE_SAMPLE_SIZE: int = 1000

    # Session snapshot storage
    SESSION_DB_URL: str = getenv('SESSION_DB_URL', 'sqlite:///dashcache_session.db')
    SESSION_NAMESPACE: str = 'dashcache.session'

    LOG_LEVEL: str = getenv('LOG_LEVEL', 'INFO')


settings = Settings()
