"""SafeAct — Agent configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with SAFEACT_
    3. System config: /etc/safeact/config.yaml
    4. User config:   ~/.safeact/config.yaml
    5. An explicit file passed to ``Settings.load()``

Nested values use ``__`` as delimiter, e.g.
``SAFEACT_EXECUTOR__MAX_RETRIES=2``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from safeact.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Sandbox policy blocks
# ---------------------------------------------------------------------------


class PathRule(BaseModel):
    """Glob rule granting (or refusing) filesystem actions outside the workspace."""

    path: str
    actions: list[str] = Field(default_factory=lambda: ["read", "list", "search"])
    level: Literal["auto", "ask", "deny"] = "ask"


class FilesystemPolicyConfig(BaseModel):
    workspace: str = "~/.safeact/workspace"
    allowed_paths: list[PathRule] = Field(default_factory=list)
    denied_paths: list[str] = Field(
        default_factory=lambda: ["~/.ssh/**", "~/.gnupg/**", "~/.aws/**", "/etc/shadow"]
    )


class ShellPolicyConfig(BaseModel):
    safe_commands: list[str] = Field(
        default_factory=lambda: [
            "ls", "wc", "date", "whoami", "pwd", "echo",
            "git status", "git log", "git diff",
        ]
    )
    ask_commands: list[str] = Field(
        default_factory=lambda: [
            "git commit", "git push", "git pull", "mkdir", "cp", "mv", "npm", "pnpm", "node",
        ]
    )
    denied_patterns: list[str] = Field(
        default_factory=lambda: [
            "env", "printenv", "rm -rf", "sudo", "curl | bash", "wget | sh",
            "chmod 777", "> /dev", "mkfs", "dd if=",
        ]
    )
    timeout_seconds: float = Field(default=30.0, gt=0, le=3600)
    max_output_chars: int = Field(default=10_000, ge=256)


class NetworkPolicyConfig(BaseModel):
    allowed_domains: list[str] = Field(
        default_factory=lambda: ["ollama.com", "api.telegram.org", "localhost", "api.github.com"]
    )
    ask_domains: bool = True
    rate_limit_per_minute: int = Field(default=30, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    max_body_chars: int = Field(default=10_000, ge=256)


class SandboxConfig(BaseModel):
    filesystem: FilesystemPolicyConfig = Field(default_factory=FilesystemPolicyConfig)
    shell: ShellPolicyConfig = Field(default_factory=ShellPolicyConfig)
    network: NetworkPolicyConfig = Field(default_factory=NetworkPolicyConfig)


# ---------------------------------------------------------------------------
# Runtime blocks
# ---------------------------------------------------------------------------


class ApprovalConfig(BaseModel):
    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds an approval prompt stays open before it resolves to denied.",
    )
    plan_timeout_seconds: float = Field(default=300.0, gt=0)


class PlannerConfig(BaseModel):
    max_steps: int = Field(default=8, ge=1, le=50)
    history_turns: int = Field(default=6, ge=0, le=50)
    max_tokens: int = Field(default=1400, ge=128)


class ExecutorConfig(BaseModel):
    max_retries: int = Field(default=1, ge=0, le=10)
    retry_delay_seconds: float = Field(default=0.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_concurrency: int = Field(default=4, ge=1, le=64)


class AuditConfig(BaseModel):
    db_path: Path | None = Path("~/.safeact/audit.db")
    ndjson_file: Path | None = None
    output_max_bytes: int = Field(default=1024, ge=64)


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SAFEACT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("audit", mode="before")
    @classmethod
    def expand_audit_paths(cls, v: object) -> object:
        if isinstance(v, dict):
            for key in ("db_path", "ndjson_file"):
                if key in v and isinstance(v[key], str):
                    v[key] = Path(v[key]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/safeact/config.yaml"),
            Path.home() / ".safeact" / "config.yaml",
        ]
        if config_file:
            if not config_file.exists():
                raise ConfigError(
                    f"Config file not found: {config_file}",
                    context={"path": str(config_file)},
                )
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                with path.open() as f:
                    try:
                        loaded = yaml.safe_load(f) or {}
                    except yaml.YAMLError as exc:
                        raise ConfigError(
                            f"Invalid YAML in {path}: {exc}", context={"path": str(path)}
                        ) from exc
                if not isinstance(loaded, dict):
                    raise ConfigError(
                        f"Config file {path} must contain a mapping",
                        context={"path": str(path)},
                    )
                data.update(loaded)

        return cls(**data)


# Module-level singleton: replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings | None) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
