"""
Configuration Management

Unified configuration for the clinic reporting service. Consolidates database,
directory, logging, web, identity and reporting settings with optional
.config.json loading and CLINIC_* environment variable overrides.
"""

import os
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Environment(Enum):
    """Supported environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class DatabaseConfig:
    """SQLite connection settings"""
    path: Path = field(default_factory=lambda: Path("data/database/clinic.db"))
    journal_mode: str = "WAL"
    connection_timeout: int = 30
    max_connections: int = 10
    enable_foreign_keys: bool = True


@dataclass
class DirectoryConfig:
    """Directory structure configuration"""
    data_dir: Path = field(default_factory=lambda: Path("data"))
    logs_dir: Path = field(default_factory=lambda: Path("data/logs"))
    database_dir: Path = field(default_factory=lambda: Path("data/database"))

    def ensure(self):
        """Create the data directories if they are missing"""
        for dir_path in [self.data_dir, self.logs_dir, self.database_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_rotation_size: int = 10 * 1024 * 1024  # 10MB
    file_retention_count: int = 5
    enable_console: bool = True
    enable_file: bool = False


@dataclass
class WebConfig:
    """Web interface configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class IdentityConfig:
    """
    Request identity settings.

    The session layer in front of this service resolves the caller and forwards
    the role and assigned branch as headers; these are their names.
    """
    role_header: str = "X-User-Role"
    branch_header: str = "X-Branch-Id"


@dataclass
class ReportingConfig:
    """Reporting presentation settings"""
    currency_label: str = "د.ع"
    top_n: int = 10
    trend_months: int = 12


class UnifiedConfig:
    """
    Central configuration management system
    Implements singleton pattern and environment-aware configuration
    Loads from .config.json file with environment variable overrides
    """

    _instance: Optional['UnifiedConfig'] = None
    _initialized: bool = False
    _config_file = Path(os.getenv('CLINIC_CONFIG_FILE', '.config.json'))
    _json_config: Optional[Dict[str, Any]] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._load_json_config()

        env_mode = self._get_config_value('environment', 'mode', default='development')
        if not env_mode or not isinstance(env_mode, str):
            env_mode = 'development'
        env_var = os.getenv('CLINIC_ENVIRONMENT')
        if env_var:
            env_mode = env_var
        try:
            self.environment = Environment(env_mode)
        except ValueError:
            logging.getLogger(__name__).warning(f"Unknown environment '{env_mode}', using development")
            self.environment = Environment.DEVELOPMENT

        self.database = self._load_database_config()
        self.directories = self._load_directory_config()
        self.logging = self._load_logging_config()
        self.web = self._load_web_config()
        self.identity = self._load_identity_config()
        self.reporting = self._load_reporting_config()

        self._initialized = True

    def _load_json_config(self):
        """Load configuration from .config.json file"""
        if self._config_file.exists():
            try:
                with open(self._config_file, 'r', encoding='utf-8') as f:
                    self._json_config = json.load(f)
                logging.getLogger(__name__).info(f"Loaded configuration from {self._config_file}")
            except (json.JSONDecodeError, IOError) as e:
                logging.getLogger(__name__).warning(f"Error loading {self._config_file}: {e}. Using defaults.")
                self._json_config = None
        else:
            logging.getLogger(__name__).debug(f"Config file {self._config_file} not found. Using defaults.")
            self._json_config = None

    def _get_config_value(self, *keys, default=None):
        """
        Get a value from JSON config using nested keys
        Example: _get_config_value('database', 'path', default='data/database/clinic.db')
        """
        if not self._json_config:
            return default

        value = self._json_config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        # Skip documentation keys (keys starting with _)
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if not k.startswith('_')} if value else default

        return value if value is not None else default

    def _load_database_config(self) -> DatabaseConfig:
        """Load database configuration from JSON and environment overrides"""
        db_config = self._get_config_value('database', default={})
        config = DatabaseConfig()

        config.path = Path(os.getenv('CLINIC_DATABASE_PATH', db_config.get('path', str(config.path))))
        config.journal_mode = db_config.get('journal_mode', config.journal_mode)
        config.connection_timeout = int(os.getenv('CLINIC_DATABASE_TIMEOUT', str(db_config.get('connection_timeout', 30))))
        config.max_connections = int(os.getenv('CLINIC_DATABASE_MAX_CONNECTIONS', str(db_config.get('max_connections', 10))))
        config.enable_foreign_keys = db_config.get('enable_foreign_keys', True)

        return config

    def _load_directory_config(self) -> DirectoryConfig:
        """Load directory configuration from JSON and environment overrides"""
        dirs_config = self._get_config_value('directories', default={})
        config = DirectoryConfig()

        config.data_dir = Path(os.getenv('CLINIC_DATA_DIR', dirs_config.get('data_dir', 'data')))
        config.logs_dir = Path(os.getenv('CLINIC_LOGS_DIR', dirs_config.get('logs_dir', 'data/logs')))
        config.database_dir = Path(dirs_config.get('database_dir', 'data/database'))

        return config

    def _load_logging_config(self) -> LoggingConfig:
        """Load logging configuration from JSON and environment overrides"""
        log_config = self._get_config_value('logging', default={})
        config = LoggingConfig()

        log_level = os.getenv('CLINIC_LOG_LEVEL', log_config.get('level', 'INFO'))
        try:
            config.level = LogLevel(log_level.upper())
        except ValueError:
            config.level = LogLevel.INFO

        config.format = os.getenv('CLINIC_LOG_FORMAT', log_config.get('format', config.format))
        config.date_format = log_config.get('date_format', config.date_format)
        rotation_mb = log_config.get('file_rotation_size_mb', 10)
        config.file_rotation_size = rotation_mb * 1024 * 1024
        config.file_retention_count = log_config.get('file_retention_count', 5)
        config.enable_console = log_config.get('enable_console', True)
        config.enable_file = log_config.get('enable_file', False)

        # Explicit level settings win over the environment defaults
        if 'CLINIC_LOG_LEVEL' not in os.environ and 'level' not in log_config:
            if self.environment == Environment.DEVELOPMENT:
                config.level = LogLevel.DEBUG
            elif self.environment == Environment.PRODUCTION:
                config.level = LogLevel.INFO
                config.enable_file = True

        return config

    def _load_web_config(self) -> WebConfig:
        """Load web configuration from JSON and environment overrides"""
        web_config = self._get_config_value('web', default={})
        config = WebConfig()

        config.host = os.getenv('CLINIC_WEB_HOST', web_config.get('host', '0.0.0.0'))
        config.port = int(os.getenv('CLINIC_WEB_PORT', str(web_config.get('port', 8000))))
        config.reload = web_config.get('reload', False)
        config.log_level = os.getenv('CLINIC_WEB_LOG_LEVEL', web_config.get('log_level', 'info'))
        config.cors_origins = web_config.get('cors_origins', ['*'])

        if self.environment == Environment.DEVELOPMENT:
            config.log_level = "debug"

        return config

    def _load_identity_config(self) -> IdentityConfig:
        """Load identity header configuration"""
        identity_config = self._get_config_value('identity', default={})
        config = IdentityConfig()

        config.role_header = identity_config.get('role_header', config.role_header)
        config.branch_header = identity_config.get('branch_header', config.branch_header)

        return config

    def _load_reporting_config(self) -> ReportingConfig:
        """Load reporting configuration from JSON"""
        reporting_config = self._get_config_value('reporting', default={})
        config = ReportingConfig()

        config.currency_label = reporting_config.get('currency_label', config.currency_label)
        config.top_n = int(reporting_config.get('top_n', config.top_n))
        config.trend_months = int(reporting_config.get('trend_months', config.trend_months))

        return config

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization"""
        return {
            'environment': self.environment.value,
            'database': {
                'path': str(self.database.path),
                'connection_timeout': self.database.connection_timeout,
                'max_connections': self.database.max_connections
            },
            'directories': {
                'data_dir': str(self.directories.data_dir),
                'logs_dir': str(self.directories.logs_dir),
                'database_dir': str(self.directories.database_dir)
            },
            'web': {
                'host': self.web.host,
                'port': self.web.port,
                'reload': self.web.reload
            },
            'reporting': {
                'top_n': self.reporting.top_n,
                'trend_months': self.reporting.trend_months
            }
        }


# Global configuration instance (singleton)
config = UnifiedConfig()


def setup_logging():
    """Setup logging configuration based on current config"""
    log_config = config.logging
    root_logger = logging.getLogger()

    logging.basicConfig(
        level=getattr(logging, log_config.level.value),
        format=log_config.format,
        datefmt=log_config.date_format,
        force=True
    )

    if log_config.enable_file:
        config.directories.ensure()
        log_file = config.directories.logs_dir / f"clinic_{datetime.now().strftime('%Y%m%d')}.log"

        existing_file_handler = None
        for handler in root_logger.handlers:
            if isinstance(handler, logging.handlers.RotatingFileHandler):
                if handler.baseFilename == str(log_file.absolute()):
                    existing_file_handler = handler
                    break

        if existing_file_handler is None:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=log_config.file_rotation_size,
                backupCount=log_config.file_retention_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(logging.Formatter(log_config.format, log_config.date_format))
            root_logger.addHandler(file_handler)

    # Disable console logging in production if configured
    if not log_config.enable_console and config.is_production():
        root_logger.handlers = [h for h in root_logger.handlers
                                if isinstance(h, logging.handlers.RotatingFileHandler)]
