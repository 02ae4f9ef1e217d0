import os
import configparser
from pathlib import Path

class Config:
    """Configuration manager for the Material Planning reorder service."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        env_path = os.getenv('MATERIAL_PLANNING_CONFIG')
        if env_path:
            self._config_path = Path(env_path)
        else:
            self._config_path = Path('config') / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Defaults first, file values override them
        self._load_defaults()
        if self._config_path.exists():
            self._config.read(self._config_path)

        self._initialized = True

    def _load_defaults(self):
        """Populate the default configuration sections."""
        self._config['DATABASE'] = {
            'type': 'postgresql',
            'engine': 'postgresql',
            'host': 'localhost',
            'port': '5432',
            'database': 'material_planning',
            'username': 'postgres',
            'password': 'postgres',
            'sqlite_path': 'material_planning.db',
            'pool_size': '10',
            'max_overflow': '20',
            'pool_timeout': '30',
            'pool_recycle': '1800',
            'echo': 'False'
        }

        self._config['SUPABASE'] = {
            'url': '',
            'key': ''
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True'
        }

        self._config['REORDER'] = {
            'minimum_order_quantity': '1',
            'claim_timeout_seconds': '300',
            'max_workers': '4',
            'poll_interval_seconds': '5',
            'resubscribe_attempts': '5',
            'resubscribe_backoff_seconds': '2'
        }

        self._config['PLANNING'] = {
            'low_band_pct': '50.0',
            'overstock_margin_pct': '50.0',
            'statistics_ttl_seconds': '180',
            'default_page_size': '50'
        }

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_db_url(self):
        """Generate SQLAlchemy database URL."""
        db_type = self.get('DATABASE', 'type', 'postgresql').split('#')[0].strip().lower()
        if db_type == 'sqlite':
            return f"sqlite:///{self.get('DATABASE', 'sqlite_path', 'material_planning.db')}"

        engine = self.get('DATABASE', 'engine', 'postgresql')
        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'material_planning')

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True)
        }

    @property
    def reorder_config(self):
        """Get reorder processing configuration."""
        return {
            'minimum_order_quantity': self.get_int('REORDER', 'minimum_order_quantity', 1),
            'claim_timeout_seconds': self.get_int('REORDER', 'claim_timeout_seconds', 300),
            'max_workers': self.get_int('REORDER', 'max_workers', 4),
            'poll_interval_seconds': self.get_float('REORDER', 'poll_interval_seconds', 5.0),
            'resubscribe_attempts': self.get_int('REORDER', 'resubscribe_attempts', 5),
            'resubscribe_backoff_seconds': self.get_float('REORDER', 'resubscribe_backoff_seconds', 2.0)
        }

    @property
    def planning_config(self):
        """Get material planning (statistics) configuration."""
        return {
            'low_band_pct': self.get_float('PLANNING', 'low_band_pct', 50.0),
            'overstock_margin_pct': self.get_float('PLANNING', 'overstock_margin_pct', 50.0),
            'statistics_ttl_seconds': self.get_int('PLANNING', 'statistics_ttl_seconds', 180),
            'default_page_size': self.get_int('PLANNING', 'default_page_size', 50)
        }

# Global config instance
config = Config()
