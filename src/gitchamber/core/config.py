"""Configuration loading and validation."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_GPGCONF_CANDIDATES = ["gpgconf", "/opt/homebrew/bin/gpgconf", "/usr/local/bin/gpgconf"]


def default_data_root() -> Path:
    """Per-user data directory shared with the opencode runtime."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(xdg_data_home) / "opencode"


class GitConfig(BaseModel):
    """Git binary invocation settings."""
    executable: str = "git"
    timeout: Optional[float] = None  # None = let long fetches run to completion

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"timeout must be positive, got {v}")
        return v


class CredentialConfig(BaseModel):
    """SSH agent discovery for git subprocesses."""
    probe_ssh_agent: bool = True
    gpg_agent_socket: Path = Field(default=Path("~/.gnupg/S.gpg-agent.ssh"))
    gpgconf_candidates: List[str] = Field(default_factory=lambda: list(DEFAULT_GPGCONF_CANDIDATES))


class WorktreeConfig(BaseModel):
    """Worktree placement and naming."""
    data_root: Path = Field(default_factory=default_data_root)
    branch_prefix: str = "openchamber"
    max_name_attempts: int = 26
    max_name_length: int = 80

    @field_validator("max_name_attempts", "max_name_length")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator("branch_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v:
            raise ValueError("branch_prefix cannot be empty")
        return v

    def worktree_root(self, project_id: str) -> Path:
        return self.data_root.expanduser() / "worktree" / project_id

    def project_storage_root(self) -> Path:
        return self.data_root.expanduser() / "storage" / "project"


class StartScriptConfig(BaseModel):
    """Post-create start commands."""
    enabled: bool = True
    shell: str = "bash"
    timeout: Optional[float] = None


class AdapterConfig(BaseModel):
    """Structured repository adapter (fast path) toggle."""
    enabled: bool = True


class ChamberConfig(BaseSettings):
    """Main configuration."""
    model_config = SettingsConfigDict(
        env_prefix="GITCHAMBER_",
        env_nested_delimiter="__",
        extra="allow",
    )

    git: GitConfig = Field(default_factory=GitConfig)
    credentials: CredentialConfig = Field(default_factory=CredentialConfig)
    worktree: WorktreeConfig = Field(default_factory=WorktreeConfig)
    start_scripts: StartScriptConfig = Field(default_factory=StartScriptConfig)
    adapter: AdapterConfig = Field(default_factory=AdapterConfig)


_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# resolved path -> (st_mtime, config)
_config_cache: Dict[str, Tuple[float, ChamberConfig]] = {}


def clear_config_cache() -> None:
    _config_cache.clear()


def _expand_env_refs(data: Any, where: str = "") -> Any:
    """
    Substitute ``${VAR}`` references in string values, recursively.

    An unset variable is left as written and reported with its config path
    (e.g. ``worktree.data_root``).
    """
    if isinstance(data, dict):
        return {key: _expand_env_refs(value, f"{where}.{key}" if where else str(key)) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_refs(item, f"{where}[{i}]") for i, item in enumerate(data)]
    if not isinstance(data, str):
        return data

    def substitute(match: "re.Match[str]") -> str:
        value = os.environ.get(match.group(1))
        if value is None:
            logger.warning(f"Environment variable {match.group(1)} is not set (config key {where or 'root'})")
            return match.group(0)
        return value

    return _ENV_REFERENCE.sub(substitute, data)


def _parse_config_file(config_path: Path) -> ChamberConfig:
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    return ChamberConfig(**_expand_env_refs(raw))


def load_config(config_path: Path = Path("gitchamber.yaml")) -> ChamberConfig:
    """
    Load settings from a YAML file; defaults when the file does not exist.

    Parsed files are cached until their mtime changes.
    """
    config_path = Path(config_path).expanduser()
    try:
        mtime = config_path.stat().st_mtime
    except FileNotFoundError:
        logger.warning(f"Config file not found: {config_path}. Using default configuration.")
        return ChamberConfig()

    key = str(config_path.resolve())
    cached = _config_cache.get(key)
    if cached is not None and cached[0] == mtime:
        return cached[1]

    config = _parse_config_file(config_path)
    _config_cache[key] = (mtime, config)
    return config
