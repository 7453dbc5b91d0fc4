#!/usr/bin/env python3
"""
Configuration Manager for SchemaPort
Handles environment variables, the .env file and default conversion options centrally
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass

from core.options import ConvertOptions

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass
class SchemaPortConfig:
    """SchemaPort configuration settings"""

    # Base path - use environment or default
    base_dir: Path = None

    # Runtime settings
    log_level: str = "INFO"
    profile: str = "dev"  # dev, prod

    # Conversion defaults
    default_schema: str = "public"
    with_rls: bool = False

    # HTTP service
    host: str = "127.0.0.1"
    port: int = 8000
    max_script_bytes: int = 1_048_576

    def __post_init__(self):
        """Load settings from environment variables"""
        self.profile = os.environ.get('SCHEMAPORT_PROFILE', self.profile)

        if self.base_dir is None:
            default_root = Path(__file__).parent.parent
            self.base_dir = Path(os.environ.get('SCHEMAPORT_HOME', default_root))
        else:
            self.base_dir = Path(self.base_dir)

        self.log_level = os.environ.get('SCHEMAPORT_LOG_LEVEL', self.log_level).upper()
        self.default_schema = os.environ.get('SCHEMAPORT_DEFAULT_SCHEMA', self.default_schema) or 'public'
        self.with_rls = os.environ.get('SCHEMAPORT_WITH_RLS', str(self.with_rls)).strip().lower() in TRUE_VALUES

        self.host = os.environ.get('SCHEMAPORT_HOST', self.host)
        self.port = _int_env('SCHEMAPORT_PORT', self.port)
        self.max_script_bytes = _int_env('SCHEMAPORT_MAX_SCRIPT_BYTES', self.max_script_bytes)

        # Apply profile defaults
        if self.profile == 'prod':
            self.log_level = 'WARNING'

    def default_options(self) -> ConvertOptions:
        return ConvertOptions(schema=self.default_schema, with_rls=self.with_rls)

    def get_safe_dict(self) -> Dict[str, Any]:
        """Configuration as a plain dict (side-effect free)"""
        return {
            'base_dir': str(self.base_dir),
            'profile': self.profile,
            'log_level': self.log_level,
            'default_schema': self.default_schema,
            'with_rls': self.with_rls,
            'host': self.host,
            'port': self.port,
            'max_script_bytes': self.max_script_bytes,
        }


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


class ConfigManager:
    """Singleton configuration manager"""

    _instance: Optional['ConfigManager'] = None
    _config: Optional[SchemaPortConfig] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self.load_config()

    def load_config(self):
        """Load configuration from the environment.

        Priority (highest to lowest):
        1. Environment variables (SCHEMAPORT_*)
        2. .env file in SCHEMAPORT_HOME (loaded into os.environ before config creation)
        3. SchemaPortConfig dataclass defaults
        """
        default_base = Path(__file__).parent.parent
        base_dir = Path(os.environ.get('SCHEMAPORT_HOME', default_base))
        env_file = base_dir / '.env'
        if env_file.exists():
            self._load_env_file(env_file)

        self._config = SchemaPortConfig()

    def _load_env_file(self, env_file: Path):
        """Load environment variables from .env file.

        Only sets values for keys not already in os.environ,
        ensuring exported env vars take precedence over .env file.
        """
        try:
            with open(env_file, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        key = key.strip()
                        if key not in os.environ:
                            os.environ[key] = value.strip().strip('"').strip("'")
        except OSError as e:
            logger.warning(f"Could not load .env file {env_file}: {e}")

    @property
    def config(self) -> SchemaPortConfig:
        if self._config is None:
            self.load_config()
        return self._config

    @classmethod
    def reset(cls):
        """Forget the loaded configuration; the next access re-reads the environment"""
        cls._instance = None
        cls._config = None


def get_config() -> SchemaPortConfig:
    """Get the global configuration instance"""
    return ConfigManager().config


def default_options() -> ConvertOptions:
    """ConvertOptions seeded from the global configuration"""
    return get_config().default_options()


def configure_logging(level: Optional[str] = None):
    """Root logging setup for the CLI and the HTTP service"""
    level_name = (level or get_config().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


if __name__ == "__main__":
    config = get_config()
    print("SchemaPort Configuration:")
    print("-" * 40)
    for key, value in config.get_safe_dict().items():
        print(f"  {key}: {value}")
