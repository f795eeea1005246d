"""Configuration Manager for the FieldVision sync subsystem."""
from pathlib import Path
from appdirs import user_data_dir
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = 'FieldVision'


class ConfigManager(BaseSettings):
    """Manages sync configuration using Pydantic BaseSettings.

    Every setting can be overridden with a FIELDVISION_-prefixed environment
    variable, e.g. FIELDVISION_SYNC_MAX_RETRIES=5.
    """

    model_config = SettingsConfigDict(env_prefix='FIELDVISION_', case_sensitive=False)

    # API settings
    api_base_url: str = 'https://procam360-production.up.railway.app'
    api_version: str = 'v1'
    api_timeout: float = 30.0
    upload_timeout: float = 300.0
    api_max_retries: int = 3
    api_retry_delay: float = 1.0
    upload_retry_attempts: int = 3
    access_token: str = ''

    # Sync settings
    sync_max_retries: int = 3
    background_sync_interval: float = 300.0  # 5 minutes
    background_task_budget: float = 25.0
    photos_page_size: int = 50

    # Reachability settings
    reachability_check_interval: float = 15.0
    reachability_probe_url: str = ''

    # Media settings
    thumbnail_max_size: int = 300  # pixels

    # Storage settings
    data_dir: str = ''

    @property
    def api_url(self):
        """Base URL including the API version segment."""
        return f"{self.api_base_url.rstrip('/')}/{self.api_version}"

    @property
    def probe_url(self):
        return self.reachability_probe_url or self.api_base_url

    @property
    def resolved_data_dir(self):
        return Path(self.data_dir) if self.data_dir else Path(user_data_dir(APP_NAME, APP_NAME))

    @property
    def db_path(self):
        return str(self.resolved_data_dir / 'fieldvision.db')

    @property
    def sync_state_path(self):
        return str(self.resolved_data_dir / 'sync_state.json')

    def get(self, key, default=None):
        """Get a configuration value."""
        return getattr(self, key, default)

    def set(self, key, value):
        """Set a configuration value."""
        setattr(self, key, value)

    def get_all(self):
        """Get all configuration values as dictionary."""
        return self.model_dump()
