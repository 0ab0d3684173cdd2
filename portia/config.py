"""Configuration loader for Portia."""
import copy
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BACKENDS = ('sqlite', 'sheets', 'notion')

# env var -> path in the yaml tree it overrides
ENV_OVERRIDES = {
    'PORTIA_BACKEND': ('backend',),
    'PORTIA_DATABASE_PATH': ('backends', 'sqlite', 'path'),
    'GOOGLE_CREDENTIALS_FILE': ('backends', 'sheets', 'credentials_file'),
    'PORTIA_SPREADSHEET_ID': ('backends', 'sheets', 'spreadsheet_id'),
    'NOTION_BASE_URL': ('backends', 'notion', 'base_url'),
    'NOTION_USERS_DB': ('backends', 'notion', 'databases', 'users'),
    'NOTION_APPLICATIONS_DB': ('backends', 'notion', 'databases', 'applications'),
    'NOTION_ACCESS_REQUESTS_DB': ('backends', 'notion', 'databases', 'access_requests'),
    'NOTION_ACCESS_REGISTRY_DB': ('backends', 'notion', 'databases', 'access_registry'),
    'PORTIA_ALLOWED_DOMAINS': ('auth', 'allowed_domains'),
}


def _set_path(data: Dict, path: tuple, value):
    node = data
    for key in path[:-1]:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    node[path[-1]] = value


def _deep_merge(base: Dict, extra: Dict) -> Dict:
    for key, value in (extra or {}).items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _domain_list(value) -> list:
    if isinstance(value, str):
        value = value.split(',')
    return [d.strip().lower().lstrip('@') for d in value or [] if d and d.strip()]


class Config:
    """
    Configuration management for Portia.

    Settings come from config.yaml, then environment variables, then any
    explicit overrides (a nested dict in the yaml's shape). Secrets are
    only ever read from the environment.
    """

    def __init__(self, config_path: str = None, overrides: Optional[Dict] = None,
                 env: Optional[Mapping[str, str]] = None):
        self.base_dir = Path(__file__).parent
        config_path = Path(config_path) if config_path else self.base_dir / "config.yaml"
        env = os.environ if env is None else env

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        for var, path in ENV_OVERRIDES.items():
            if env.get(var):
                _set_path(data, path, env[var])
        data = _deep_merge(copy.deepcopy(data), overrides or {})

        # Bot info
        self.name = data.get("name", "Portia")
        self.description = data.get("description", "")
        self.version = data.get("version", "1.0.0")
        self.emoji = data.get("emoji", "")

        # Server config
        server_cfg = data.get("server", {}) or {}
        self.server_host = server_cfg.get("host", "0.0.0.0")
        self.server_port = int(server_cfg.get("port", 8030))

        # Secrets (env)
        self.secret_key = env.get("FLASK_SECRET_KEY", "dev-secret-key-change-in-production")
        self.session_secret = env.get("SESSION_SECRET") or self.secret_key
        self.notion_api_key = env.get("NOTION_API_KEY", "")

        # Backend selection
        self.backend = str(data.get("backend", "sqlite")).strip().lower()
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{self.backend}', expected one of: {', '.join(BACKENDS)}")

        backends_cfg = data.get("backends", {}) or {}

        sqlite_cfg = backends_cfg.get("sqlite", {}) or {}
        db_path = Path(sqlite_cfg.get("path", "database/portia.db"))
        self.database_path = db_path if db_path.is_absolute() else self.base_dir / db_path

        sheets_cfg = backends_cfg.get("sheets", {}) or {}
        self.spreadsheet_id = sheets_cfg.get("spreadsheet_id", "") or ""
        self.google_credentials_file = sheets_cfg.get("credentials_file", "") or ""

        notion_cfg = backends_cfg.get("notion", {}) or {}
        self.notion_base_url = notion_cfg.get("base_url") or "https://api.notion.com/v1"
        self.notion_timeout = int(notion_cfg.get("timeout", 30))
        self.notion_proxy_enabled = bool(notion_cfg.get("proxy_enabled", False))
        self.notion_database_ids = dict(notion_cfg.get("databases", {}) or {})

        # Read cache
        cache_cfg = data.get("cache", {}) or {}
        self.cache_enabled = bool(cache_cfg.get("enabled", True))
        self.cache_ttl_seconds = int(cache_cfg.get("ttl_seconds", 600))

        # Auth
        auth_cfg = data.get("auth", {}) or {}
        self.session_ttl_seconds = int(auth_cfg.get("session_ttl_seconds", 8 * 60 * 60))
        self.allowed_domains = _domain_list(auth_cfg.get("allowed_domains"))

        # API
        api_cfg = data.get("api", {}) or {}
        self.cors_origin = api_cfg.get("cors_origin", "*")


# Global config instance
config = Config()
