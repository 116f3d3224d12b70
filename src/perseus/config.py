"""Layered TOML configuration.

Defaults are overridden by the global file
(``$XDG_CONFIG_HOME/perseus/config.toml``) and then by the project file
(``<project>/.perseus/config.toml``). Missing files are skipped and
unknown keys ignored.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "perseus"
CONFIG_FILE_NAME = "config.toml"
PROJECT_MARKERS = (".perseus", ".git", "pyproject.toml", "package.json", "Cargo.toml")


def _expand(path: Optional[Path]) -> Optional[Path]:
    return path.expanduser() if path is not None else None


class HttpConfig(BaseModel):
    timeout: int = Field(default=30, ge=0, le=600)  # seconds, 0 = no timeout
    follow_redirects: bool = True
    max_redirects: int = Field(default=10, ge=0, le=100)


class ProxyConfig(BaseModel):
    url: Optional[str] = None
    no_proxy: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "://" not in value:
            raise ValueError(f'"{value}" is not a valid URL')
        return value


class SslConfig(BaseModel):
    verify: bool = True
    ca_cert: Optional[Path] = None
    client_cert: Optional[Path] = None
    client_key: Optional[Path] = None

    @model_validator(mode="after")
    def _check_paths(self) -> "SslConfig":
        self.ca_cert = _expand(self.ca_cert)
        self.client_cert = _expand(self.client_cert)
        self.client_key = _expand(self.client_key)
        if (self.client_cert is None) != (self.client_key is None):
            raise ValueError("client_cert and client_key must both be set or both be unset")
        for name in ("ca_cert", "client_cert", "client_key"):
            path = getattr(self, name)
            if path is not None and not path.exists():
                raise ValueError(f'{name} = "{path}" file not found')
        return self


class EditorConfig(BaseModel):
    tab_size: int = Field(default=2, ge=1, le=8)


class Config(BaseModel):
    http: HttpConfig = Field(default_factory=HttpConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    ssl: SslConfig = Field(default_factory=SslConfig)
    editor: EditorConfig = Field(default_factory=EditorConfig)


class ConfigError(Exception):
    """Configuration could not be read, parsed or validated."""

    def __init__(self, messages: list[str]) -> None:
        super().__init__("\n".join(messages))
        self.messages = messages


def find_project_root(start: Path | None = None) -> Path | None:
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    return None


def global_config_path() -> Path | None:
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    home = os.environ.get("HOME", "").strip()
    if not home:
        return None
    return Path(home) / ".config" / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def project_config_path() -> Path | None:
    root = find_project_root()
    if root is None:
        return None
    return root / f".{CONFIG_DIR_NAME}" / CONFIG_FILE_NAME


def _merge(base: dict, overlay: dict) -> dict:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_layer(path: Path) -> dict:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except OSError as exc:
        raise ConfigError([f'config error: could not read "{path}": {exc}']) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError([f'config error: failed to parse "{path}": {exc}']) from exc


def load_config(paths: list[Path] | None = None) -> Config:
    """Merge the config layers over the defaults and validate the result."""
    if paths is None:
        paths = [p for p in (global_config_path(), project_config_path()) if p is not None]
    data: dict = {}
    for path in paths:
        if not path.exists():
            continue
        logger.debug("loading config layer %s", path)
        data = _merge(data, _read_layer(path))
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        messages = [
            f"config error: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ConfigError(messages) from exc
