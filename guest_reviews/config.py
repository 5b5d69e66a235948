"""
Configuration management for the guest review service.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Dict, Any

import yaml

log = logging.getLogger("reviews")

# Default configuration path
DEFAULT_CONFIG_PATH = Path("config.yaml")

# Default configuration - will be overridden by config file
DEFAULT_CONFIG = {
    "hostaway": {
        "base_url": "https://api.hostaway.com/v1",
        "account_id": "",
        "api_key": "",
        "timeout": 4.0,  # seconds, per request
        "retries": 2,  # transient connection / 5xx retries
        # Credential header variants, tried in order; the next one only after a 403
        "auth_headers": ["X-Hostaway-API-Key", "x-api-key"],
    },
    "store_path": "reviews_db.json",
    "fallback_path": None,  # None -> bundled dataset
    "default_channel": "hostaway",
    "autoseed": True,
    "query": {
        "default_page_size": 50,
        "max_page_size": 200,
    },
    "api": {
        "host": "0.0.0.0",
        "port": 4000,
        "allowed_origins": "*",
    },
    "log_level": "INFO",
    "log_dir": "logs",
    "log_file": "reviews.log",
    "log_max_bytes": 5 * 1024 * 1024,
    "log_backup_count": 5,
}

# Environment variable -> (section, key); section None means top level
_ENV_OVERRIDES = {
    "HOSTAWAY_ACCOUNT_ID": ("hostaway", "account_id"),
    "HOSTAWAY_API_KEY": ("hostaway", "api_key"),
    "REVIEWS_STORE_PATH": (None, "store_path"),
    "ALLOWED_ORIGINS": ("api", "allowed_origins"),
    "PORT": ("api", "port"),
}


def apply_env_overrides(config: Dict[str, Any], environ=None) -> None:
    """Copy set environment variables into *config* (mutates in place)."""
    environ = os.environ if environ is None else environ
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        if var == "PORT":
            try:
                value = int(value)
            except ValueError:
                log.warning("Ignoring non-numeric PORT=%r", value)
                continue
        target = config.setdefault(section, {}) if section else config
        target[key] = value


def _validate_config(config: Dict[str, Any]) -> None:
    """Validate config values, falling back to safe defaults on bad input."""
    hostaway = config.setdefault("hostaway", {})
    defaults = DEFAULT_CONFIG["hostaway"]

    timeout = hostaway.get("timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        log.warning("Invalid hostaway.timeout %r, falling back to %s", timeout, defaults["timeout"])
        hostaway["timeout"] = defaults["timeout"]

    retries = hostaway.get("retries")
    if not isinstance(retries, int) or retries < 0:
        hostaway["retries"] = defaults["retries"]

    headers = hostaway.get("auth_headers")
    if not isinstance(headers, list) or not headers or not all(isinstance(h, str) and h for h in headers):
        log.warning("Invalid hostaway.auth_headers %r, using defaults", headers)
        hostaway["auth_headers"] = list(defaults["auth_headers"])

    query_cfg = config.setdefault("query", {})
    for key in ("default_page_size", "max_page_size"):
        val = query_cfg.get(key)
        if not isinstance(val, int) or val < 1:
            query_cfg[key] = DEFAULT_CONFIG["query"][key]

    for key in ("log_max_bytes", "log_backup_count"):
        val = config.get(key)
        if isinstance(val, bool) or not isinstance(val, int) or val < 0:
            config[key] = DEFAULT_CONFIG[key]

    port = config.setdefault("api", {}).get("port")
    if not isinstance(port, int) or not 0 < port < 65536:
        log.warning("Invalid api.port %r, falling back to %s", port, DEFAULT_CONFIG["api"]["port"])
        config["api"]["port"] = DEFAULT_CONFIG["api"]["port"]


def load_config(config_path: Path = DEFAULT_CONFIG_PATH, environ=None) -> Dict[str, Any]:
    """Load configuration from YAML file or use defaults"""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                user_config = yaml.safe_load(f)
                if isinstance(user_config, dict):
                    # Merge configs, with nested dictionary support
                    def deep_update(d, u):
                        for k, v in u.items():
                            if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                                deep_update(d[k], v)
                            else:
                                d[k] = v

                    deep_update(config, user_config)
                    log.info(f"Loaded configuration from {config_path}")
        except (OSError, yaml.YAMLError) as e:
            log.error(f"Error loading config from {config_path}: {e}")
            log.info("Using default configuration")
    else:
        log.info(f"Config file {config_path} not found, using default configuration")
        # Create a default config file for future use
        with open(config_path, 'w') as f:
            yaml.dump(config, f, default_flow_style=False)
            log.info(f"Created default configuration file at {config_path}")

    apply_env_overrides(config, environ)
    _validate_config(config)
    return config
