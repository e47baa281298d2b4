"""
gha_utils.py - Shared utilities for gha-tui scripts.

Provides configuration loading, duration/size parsing, token discovery,
and atomic JSON writes used by the entry point, the log cache and the
headless dump.
"""

import json
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "gha-tui" / "config.yaml"
GH_HOSTS_PATH = Path.home() / ".config" / "gh" / "hosts.yml"

DEFAULT_CACHE_SIZE_MB = 500
DEFAULT_CACHE_TTL = "24h"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_DOWNLOAD_TIMEOUT = 120.0

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


class ConfigError(Exception):
    """Invalid configuration value."""
    pass


@dataclass
class Settings:
    """Resolved runtime configuration."""
    owner: str
    repo: str
    token: str | None = None
    api_url: str = DEFAULT_API_URL
    cache_dir: Path | None = None
    cache_size_mb: int = DEFAULT_CACHE_SIZE_MB
    cache_ttl: timedelta = timedelta(hours=24)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT

    @property
    def repo_nwo(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def cache_size_bytes(self) -> int:
        return self.cache_size_mb * 1024 * 1024


def load_config(config_path: Path) -> dict:
    """Load and parse a YAML config file.

    Args:
        config_path: Path to the YAML config file

    Returns:
        Parsed config dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If config file is invalid YAML or not a mapping
    """
    with open(config_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML in {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")
    return data


def parse_duration(value) -> timedelta:
    """
    Parse a duration such as "90s", "30m", "24h", "7d" or a bare number of seconds.

    Raises:
        ConfigError: If the value cannot be parsed or is negative
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"negative duration: {value}")
        return timedelta(seconds=value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigError(f"invalid duration: {value!r} (use e.g. 90s, 30m, 24h, 7d)")
    amount, unit = match.groups()
    return timedelta(seconds=float(amount) * _DURATION_UNITS[unit])


def parse_repo(value: str) -> tuple[str, str]:
    """Split "owner/repo" into its parts."""
    parts = (value or "").strip().split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ConfigError(f"repository must be in owner/repo format, got {value!r}")
    return parts[0], parts[1]


def default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "gha-tui" / "logs"


def get_token_from_gh_cli(hosts_path: Path = GH_HOSTS_PATH, host: str = "github.com") -> str | None:
    """Read the GitHub CLI's stored oauth token from hosts.yml, if any."""
    try:
        if not hosts_path.exists():
            return None
        with open(hosts_path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return None
    host_config = config.get(host) or {}
    if host_config.get("oauth_token"):
        return host_config["oauth_token"]
    for user_config in (host_config.get("users") or {}).values():
        if user_config and user_config.get("oauth_token"):
            return user_config["oauth_token"]
    return None


def resolve_token(config: dict, env=None) -> str | None:
    """Token from config, then GH_TOKEN/GITHUB_TOKEN, then the gh CLI config."""
    env = os.environ if env is None else env
    return (
        config.get("token")
        or env.get("GH_TOKEN")
        or env.get("GITHUB_TOKEN")
        or get_token_from_gh_cli()
    )


def build_settings(
    repo: str | None = None,
    config_path: Path | None = None,
    overrides: dict | None = None,
    env=None,
) -> Settings:
    """
    Merge defaults, the YAML config file, environment and CLI overrides.

    Args:
        repo: "owner/repo" from the command line (takes precedence over config)
        config_path: Explicit config file; the default location is used if it exists
        overrides: CLI values (cache_size_mb, cache_ttl, cache_dir); None entries ignored
        env: Environment mapping (defaults to os.environ)

    Returns:
        Settings

    Raises:
        ConfigError: If the repository is missing/invalid or a value is malformed
    """
    env = os.environ if env is None else env
    config: dict = {}
    if config_path is not None:
        config = load_config(config_path)
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config(DEFAULT_CONFIG_PATH)

    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value

    repo_value = repo or config.get("repo")
    if not repo_value:
        raise ConfigError("a repository is required (use -R owner/repo)")
    owner, name = parse_repo(repo_value)

    try:
        cache_size_mb = int(config.get("cache_size_mb", DEFAULT_CACHE_SIZE_MB))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid cache_size_mb: {config.get('cache_size_mb')!r}") from e
    if cache_size_mb <= 0:
        raise ConfigError("cache_size_mb must be positive")

    cache_dir = config.get("cache_dir")
    return Settings(
        owner=owner,
        repo=name,
        token=resolve_token(config, env),
        api_url=config.get("api_url") or env.get("GITHUB_API_URL") or DEFAULT_API_URL,
        cache_dir=Path(cache_dir).expanduser() if cache_dir else default_cache_dir(),
        cache_size_mb=cache_size_mb,
        cache_ttl=parse_duration(config.get("cache_ttl", DEFAULT_CACHE_TTL)),
        request_timeout=float(config.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        download_timeout=float(config.get("download_timeout", DEFAULT_DOWNLOAD_TIMEOUT)),
    )


def write_json_atomic(path: Path, data: dict) -> None:
    """Write JSON atomically using temp file + rename."""
    with tempfile.NamedTemporaryFile(
        mode='w',
        dir=path.parent,
        suffix='.tmp',
        delete=False
    ) as f:
        json.dump(data, f, indent=2)
        temp_path = f.name
    os.replace(temp_path, path)

