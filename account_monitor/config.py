"""Application configuration and environment settings"""
import logging
from typing import Dict, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# settings table name -> Settings field
DATABASE_SETTING_FIELDS = {
    'discord_webhook': 'DISCORD_WEBHOOK',
    'discord_channel_id': 'DISCORD_CHANNEL_ID',
    'check_interval_hours': 'CHECK_INTERVAL_HOURS',
    'network_refresh_minutes': 'NETWORK_REFRESH_MINUTES',
    'enable_notifications': 'ENABLE_NOTIFICATIONS',
    'min_balance_change_notification': 'MIN_BALANCE_CHANGE',
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database
    DATABASE_URL: Optional[str] = Field(None, description="SQLAlchemy database URL")
    DB_HOST: Optional[str] = Field(None, description="Database host, used when DATABASE_URL is unset")
    DB_PORT: str = Field("5432", description="Database port")
    DB_NAME: str = Field("account_monitor", description="Database name")
    DB_USER: str = Field("account_monitor", description="Database user")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DB_SSL_MODE: str = Field("prefer", description="Database SSL mode")

    # Discord settings
    DISCORD_WEBHOOK: Optional[str] = Field(None, description="Discord webhook URL for notifications")
    DISCORD_CHANNEL_ID: Optional[str] = Field(None, description="Discord channel ID for alerts")

    # Cycle intervals
    CHECK_INTERVAL_HOURS: float = Field(24, gt=0, description="Hours between balance checks")
    NETWORK_REFRESH_MINUTES: float = Field(30, gt=0, description="Minutes between network discovery runs")

    # Alerting
    ENABLE_NOTIFICATIONS: bool = Field(True, description="Enable Discord notifications")
    MIN_BALANCE_CHANGE: float = Field(0.0001, ge=0, description="Minimum balance change (human units) to alert on")

    # Chain access
    MAX_WORKERS: int = Field(8, ge=1, description="Networks resolved concurrently")
    VERIFY_SS58_CHECKSUM: bool = Field(False, description="Reject SS58 addresses with a bad checksum")
    RPC_PAGE_SIZE: int = Field(1000, ge=1, description="Page size for storage key listing")

    LOG_LEVEL: str = Field("INFO", description="Root log level")

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    @property
    def notifications_enabled(self) -> bool:
        """Notifications need both the switch and somewhere to send them"""
        return self.ENABLE_NOTIFICATIONS and bool(self.DISCORD_WEBHOOK)

    def with_database_settings(self, rows: Dict[str, str]) -> 'Settings':
        """
        Apply values from the settings table.

        Values explicitly provided through the environment win over the database,
        database values win over defaults. Unparseable values are logged and ignored.

        Args:
            rows: settings table contents as name -> value

        Returns:
            New Settings instance
        """
        overrides = {}
        for name, field_name in DATABASE_SETTING_FIELDS.items():
            if name not in rows or field_name in self.model_fields_set:
                continue
            value = rows[name]
            if field_name == 'ENABLE_NOTIFICATIONS':
                value = value.strip().lower() in ('true', '1')
            overrides[field_name] = value

        if not overrides:
            return self

        data = self.model_dump(include=self.model_fields_set)
        data.update(overrides)
        try:
            return self.__class__.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid database settings: {e}")
            return self


settings = Settings()
