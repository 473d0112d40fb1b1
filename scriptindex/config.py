# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Configuration loader for the script index.

Loads configuration from config.json file with fallback to environment variables.
"""

import os
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

APP_NAME = "scriptindex"

DEFAULT_REPO_URL = "https://github.com/elephant-xyz/Counties-trasform-scripts.git"
DEFAULT_REPO_BRANCH = "main"
DEFAULT_MAX_TOKENS_PER_CHUNK = 8192
DEFAULT_TOKEN_ENCODING = "cl100k_base"
DEFAULT_EXTENSIONS = [".js", ".mjs", ".cjs", ".ts", ".tsx"]

# Per-provider defaults: (model, dimension)
EMBEDDING_DEFAULTS: Dict[str, tuple[str, int]] = {
    "openai": ("text-embedding-3-small", 1536),
    "bedrock": ("amazon.titan-embed-text-v2:0", 1024),
}


def _parse_csv_list(raw_value: Optional[str]) -> list[str]:
    """Parse comma-separated environment variable values into a list."""
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


def get_default_data_dir() -> Path:
    """Per-user data directory following the platform convention."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    xdg = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(xdg) / APP_NAME


class Config:
    """Configuration manager for the script index."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config.json file. If None, searches in:
                1. ./config.json (current directory)
                2. ~/.scriptindex/config.json
                3. Falls back to environment variables
        """
        self.config_data: Dict[str, Any] = {}
        self._load_config(config_path)

    def _load_config(self, config_path: Optional[Path] = None):
        """Load configuration from file or environment."""
        if config_path:
            if config_path.exists():
                self._load_from_file(config_path)
                return
            logger.info(
                f"Config path {config_path} does not exist, "
                "using environment variables"
            )
            self._load_from_env()
            return

        local_config = Path("config.json")
        if local_config.exists():
            self._load_from_file(local_config)
            return

        user_config = Path.home() / f".{APP_NAME}" / "config.json"
        if user_config.exists():
            self._load_from_file(user_config)
            return

        logger.info("No config.json found, using environment variables")
        self._load_from_env()

    def _load_from_file(self, path: Path):
        """Load configuration from JSON file."""
        try:
            with open(path, "r") as f:
                self.config_data = json.load(f)
            logger.info(f"Loaded configuration from {path}")
        except Exception as e:
            logger.error(f"Error loading config from {path}: {e}")
            self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        self.config_data = {
            "server": {
                "log_level": os.getenv("SCRIPTINDEX_LOG_LEVEL", "INFO"),
            },
            "repository": {
                "url": os.getenv("SCRIPTINDEX_REPO_URL", DEFAULT_REPO_URL),
                "branch": os.getenv("SCRIPTINDEX_REPO_BRANCH", DEFAULT_REPO_BRANCH),
                "clone_path": os.getenv("SCRIPTINDEX_CLONE_PATH"),
            },
            "index": {
                "path": os.getenv("SCRIPTINDEX_INDEX_PATH"),
                "max_tokens_per_chunk": os.getenv("SCRIPTINDEX_MAX_TOKENS_PER_CHUNK"),
                "extensions": _parse_csv_list(os.getenv("SCRIPTINDEX_EXTENSIONS")) or None,
            },
            "embeddings": {
                "provider": os.getenv("SCRIPTINDEX_EMBEDDINGS_PROVIDER"),
                "model": os.getenv("SCRIPTINDEX_EMBEDDINGS_MODEL"),
                "dimension": os.getenv("SCRIPTINDEX_EMBEDDINGS_DIMENSION"),
            },
            "admin": self._load_admin_from_env(),
        }

    def _load_admin_from_env(self) -> Dict[str, Any]:
        """Load admin config from environment variables."""
        allowed_ips_raw = os.getenv("SCRIPTINDEX_ADMIN_ALLOWED_IPS", "127.0.0.1,::1")
        return {
            "enabled": os.getenv("SCRIPTINDEX_ADMIN_ENABLED", "true").lower() == "true",
            "host": os.getenv("SCRIPTINDEX_ADMIN_HOST", "127.0.0.1"),
            "port": int(os.getenv("SCRIPTINDEX_ADMIN_PORT", "8765")),
            "api_key": os.getenv("SCRIPTINDEX_ADMIN_API_KEY") or None,
            "require_api_key": (
                os.getenv("SCRIPTINDEX_ADMIN_REQUIRE_API_KEY", "false").lower() == "true"
            ),
            "allowed_ips": _parse_csv_list(allowed_ips_raw),
        }

    def _get_int(self, key: str, default: int) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s '%s', defaulting to %s", key, value, default)
            return default

    # Getters for easy access
    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split(".")
        value = self.config_data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    @property
    def log_level(self) -> str:
        return self.get("server.log_level", "INFO")

    @property
    def log_file(self) -> Optional[str]:
        """Get log file path from config or environment."""
        env_log_file = os.getenv("SCRIPTINDEX_LOG_FILE")
        if env_log_file:
            return env_log_file
        return self.get("server.log_file") or None

    @property
    def data_dir(self) -> Path:
        path_str = self.get("data_dir")
        if path_str:
            return Path(path_str).expanduser().resolve()
        return get_default_data_dir()

    # --- Upstream repository ---

    @property
    def repo_url(self) -> str:
        return self.get("repository.url", DEFAULT_REPO_URL)

    @property
    def repo_branch(self) -> str:
        return self.get("repository.branch", DEFAULT_REPO_BRANCH)

    @property
    def repo_remote(self) -> str:
        return self.get("repository.remote", "origin")

    @property
    def clone_path(self) -> Path:
        """Working copy location; relative values are kept as-is so sync can reject them."""
        path_str = self.get("repository.clone_path")
        if path_str:
            return Path(path_str).expanduser()
        return self.data_dir / "verified-scripts"

    # --- Index / store ---

    @property
    def index_path(self) -> Path:
        path_str = self.get("index.path")
        if path_str:
            return Path(path_str).expanduser().resolve()
        return self.data_dir / "index"

    @property
    def max_tokens_per_chunk(self) -> int:
        value = self._get_int("index.max_tokens_per_chunk", DEFAULT_MAX_TOKENS_PER_CHUNK)
        if value <= 0:
            logger.warning(
                "index.max_tokens_per_chunk must be positive, defaulting to %s",
                DEFAULT_MAX_TOKENS_PER_CHUNK,
            )
            return DEFAULT_MAX_TOKENS_PER_CHUNK
        return value

    @property
    def token_encoding(self) -> str:
        return self.get("index.token_encoding", DEFAULT_TOKEN_ENCODING)

    @property
    def index_extensions(self) -> list[str]:
        """File extensions eligible for function extraction."""
        value = self.get("index.extensions", DEFAULT_EXTENSIONS)
        if isinstance(value, str):
            value = _parse_csv_list(value)
        return [str(ext).lower() for ext in value if str(ext).strip()]

    # --- Embeddings ---

    @property
    def embeddings_api_key(self) -> Optional[str]:
        """Get embeddings API key (for OpenAI)."""
        api_key = self.get("embeddings.api_key")
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        return api_key or None

    @property
    def embeddings_provider(self) -> str:
        """Configured provider, or OpenAI when a key is present and Bedrock otherwise."""
        provider = self.get("embeddings.provider")
        if provider:
            return str(provider).lower()
        return "openai" if self.embeddings_api_key else "bedrock"

    @property
    def embeddings_model(self) -> str:
        default_model = EMBEDDING_DEFAULTS.get(self.embeddings_provider, ("", 0))[0]
        return self.get("embeddings.model", default_model)

    @property
    def embeddings_dimension(self) -> int:
        """Get embedding dimension."""
        default_dim = EMBEDDING_DEFAULTS.get(self.embeddings_provider, ("", 1536))[1]
        value = self._get_int("embeddings.dimension", default_dim)
        if value <= 0:
            logger.warning(
                "Invalid embeddings.dimension '%s', defaulting to %s", value, default_dim
            )
            return default_dim
        return value

    @property
    def aws_region(self) -> str:
        return self.get("embeddings.aws_region") or os.getenv("AWS_REGION", "us-east-1")

    @property
    def aws_profile(self) -> Optional[str]:
        return self.get("embeddings.aws_profile") or os.getenv("AWS_PROFILE") or None

    # --- Retrieval ---

    @property
    def default_top_k(self) -> int:
        return self._get_int("retrieval.default_top_k", 5)

    @property
    def max_top_k(self) -> int:
        return self._get_int("retrieval.max_top_k", 50)

    # --- Admin API configuration ---

    @property
    def admin_enabled(self) -> bool:
        return self.get("admin.enabled", True)

    @property
    def admin_host(self) -> str:
        return self.get("admin.host", "127.0.0.1")

    @property
    def admin_port(self) -> int:
        return int(self.get("admin.port", 8765))

    @property
    def admin_api_key(self) -> Optional[str]:
        return self.get("admin.api_key")

    @property
    def admin_allowed_ips(self) -> list[str]:
        return self.get("admin.allowed_ips", ["127.0.0.1", "::1"])

    @property
    def admin_require_api_key(self) -> bool:
        return self.get("admin.require_api_key", False)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config(config_path: Optional[Path] = None):
    """Load configuration from specified path."""
    global _config
    _config = Config(config_path)
    return _config
