"""
Runtime configuration for the booking engine
Values come from the environment (optionally a .env file)
"""
import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATABASE_URL = 'sqlite:///airport.db'


def _env_bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class Settings:
    """Settings shared by the store adapter and the services"""
    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_min: int = 1
    pool_max: int = 20
    max_retries: int = 5
    retry_delay: float = 0.01
    gate_count: int = 20
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Settings':
        """
        Build settings from environment variables

        Environment variables:
        - DATABASE_URL: postgresql://... or sqlite:///path (sqlite:// for memory)
        - DB_ECHO: log every SQL statement at debug level
        - DB_POOL_MIN / DB_POOL_MAX: PostgreSQL connection pool bounds
        - DB_MAX_RETRIES / DB_RETRY_DELAY: serialization conflict retries
        - GATE_COUNT: size of the gate pool
        - LOG_LEVEL: root logging level for the command line tool
        """
        return cls(
            database_url=os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL),
            echo=_env_bool('DB_ECHO'),
            pool_min=int(os.getenv('DB_POOL_MIN', '1')),
            pool_max=int(os.getenv('DB_POOL_MAX', '20')),
            max_retries=int(os.getenv('DB_MAX_RETRIES', '5')),
            retry_delay=float(os.getenv('DB_RETRY_DELAY', '0.01')),
            gate_count=int(os.getenv('GATE_COUNT', '20')),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


_settings = None


def get_settings() -> Settings:
    """Get or load the process-wide settings"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Override the process-wide settings (``None`` reloads from the environment)"""
    global _settings
    _settings = settings
