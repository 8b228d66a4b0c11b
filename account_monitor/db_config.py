"""Database configuration and credentials management"""
from dataclasses import dataclass
from urllib.parse import quote_plus, urlparse

from account_monitor.config import Settings
from account_monitor.errors import ConfigurationError

SUPPORTED_SCHEMES = ('postgresql', 'mysql', 'sqlite')


@dataclass
class DatabaseCredentials:
    """Database credentials container with validation"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'prefer'

    def to_connection_string(self) -> str:
        """Generate database connection string with proper escaping"""
        return (
            f"postgresql://{quote_plus(self.user)}:{quote_plus(self.password)}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'DatabaseCredentials':
        """Create credentials from the DB_* settings"""
        if not settings.DB_PASSWORD:
            raise ConfigurationError("DB_PASSWORD setting is required when DB_HOST is used")
        return cls(
            host=settings.DB_HOST,
            port=settings.DB_PORT,
            name=settings.DB_NAME,
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            ssl_mode=settings.DB_SSL_MODE
        )

    @classmethod
    def validate_url(cls, url: str) -> bool:
        """Validate database URL scheme, driver suffixes like mysql+pymysql are allowed"""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        scheme = parsed.scheme.split('+', 1)[0]
        if scheme not in SUPPORTED_SCHEMES:
            return False
        if scheme == 'sqlite':
            return True
        return bool(parsed.hostname) and bool(parsed.path.lstrip('/'))


class DatabaseManager:
    """Resolves the database connection string from settings"""

    @staticmethod
    def connection_string(settings: Settings) -> str:
        """
        Get the database connection string.

        DATABASE_URL is used when set, otherwise the URL is assembled from DB_HOST
        and the other DB_* settings.

        Returns:
            Database connection string

        Raises:
            ConfigurationError: If no usable database configuration is present
        """
        if settings.DATABASE_URL:
            if not DatabaseCredentials.validate_url(settings.DATABASE_URL):
                raise ConfigurationError("DATABASE_URL is not a supported database URL")
            return settings.DATABASE_URL

        if settings.DB_HOST:
            return DatabaseCredentials.from_settings(settings).to_connection_string()

        raise ConfigurationError("DATABASE_URL or DB_HOST setting is required")
