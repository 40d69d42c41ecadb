"""
Presale Admin - Configuration Manager
=====================================
Handles loading of application configuration from three sources, in
increasing order of precedence:

1. DEFAULTS       - Built-in values so the service always starts
2. config.yaml    - Non-sensitive settings (bind address, database name, ...)
3. Environment    - Secrets and deployment overrides (.env is loaded by app.py)

Secrets (admin bootstrap password, JWT signing key) are only ever read
from the environment, never from config.yaml.

Usage:
    config = ConfigManager(project_dir="/path/to/presale-admin").load()
    config["database"]["url"]           # mongodb://...
    require_admin_password(config)      # raises ConfigError if unusable
"""

import logging
import os
import yaml

from presale.errors import ConfigError

logger = logging.getLogger("presale.config")

MIN_ADMIN_PASSWORD_LENGTH = 8
SECRET_KEYS = ("admin_password", "jwt_secret")

DEFAULTS = {
    "web": {
        "host": "0.0.0.0",
        "port": 3000,
        "cors_origins": ["*"],
    },
    "database": {
        "url": "mongodb://localhost:27017",
        "name": "presale",
        "timeout_ms": 5000,
    },
    "auth": {
        "admin_password": "",
        "jwt_secret": "",
        "token_ttl_minutes": 60,
        "bcrypt_rounds": 10,
    },
    "admin": {
        "strict_init": False,
    },
}


def _parse_bool(value: str) -> bool:
    s = value.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(value)


# Environment variable -> (section, key, converter).
# Database_URL is the variable name used by earlier deployments.
ENV_OVERRIDES = [
    ("Database_URL", "database", "url", str),
    ("DATABASE_URL", "database", "url", str),
    ("DATABASE_NAME", "database", "name", str),
    ("ADMIN_PASSWORD", "auth", "admin_password", str),
    ("JWT_SECRET", "auth", "jwt_secret", str),
    ("HOST", "web", "host", str),
    ("PORT", "web", "port", int),
    ("STRICT_INIT_ADMIN", "admin", "strict_init", _parse_bool),
]


class ConfigManager:
    """
    Loads the merged configuration dictionary.

    Attributes:
        project_dir: Root directory of the project.
        config_path: Full path to config.yaml.
        environ:     Mapping the environment overrides are read from.
    """

    def __init__(self, project_dir: str, environ: dict | None = None):
        """
        Initialize the config manager.

        Args:
            project_dir: Absolute path to the project root directory.
            environ:     Environment mapping (defaults to os.environ).
        """
        self.project_dir = project_dir
        self.config_path = os.path.join(project_dir, "config.yaml")
        self.environ = os.environ if environ is None else environ

    def load(self) -> dict:
        """
        Load and merge configuration from defaults, config.yaml and env.

        Returns:
            A dictionary containing the full configuration. If config.yaml
            could not be parsed, defaults are used and the error is kept
            under the '_config_error' key.
        """
        config = _deep_copy(DEFAULTS)

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise yaml.YAMLError("config.yaml must contain a mapping")
                _strip_secrets(user_config)
                _deep_merge(config, user_config)
            except (yaml.YAMLError, OSError) as e:
                logger.error("Ignoring unreadable config.yaml: %s", e)
                config["_config_error"] = str(e)

        for env_name, section, key, convert in ENV_OVERRIDES:
            raw = self.environ.get(env_name)
            if raw is None or str(raw).strip() == "":
                continue
            try:
                config[section][key] = convert(str(raw).strip())
            except ValueError:
                logger.error("Ignoring invalid value for %s", env_name)

        return config


def require_admin_password(config: dict) -> str:
    """
    Return the admin bootstrap password.

    Raises:
        ConfigError: If it is unset or shorter than 8 characters.
    """
    password = config["auth"].get("admin_password") or ""
    if len(password) < MIN_ADMIN_PASSWORD_LENGTH:
        raise ConfigError(
            f"ADMIN_PASSWORD must be set and at least {MIN_ADMIN_PASSWORD_LENGTH} characters."
        )
    return password


def require_jwt_secret(config: dict) -> str:
    """Return the token signing key, raising ConfigError if unset."""
    secret = config["auth"].get("jwt_secret") or ""
    if not secret:
        raise ConfigError("JWT_SECRET must be set.")
    return secret


# -- Helper Functions ---------------------------------------------------------

def _strip_secrets(user_config: dict) -> None:
    """Drop secret keys from a YAML config; they must come from the environment."""
    auth = user_config.get("auth")
    if isinstance(auth, dict):
        for key in SECRET_KEYS:
            if auth.pop(key, None) is not None:
                logger.warning("Ignoring auth.%s in config.yaml, set it in the environment", key)


def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value

