"""Postman-compatible environments and ``{{variable}}`` substitution."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class EnvironmentVariable(BaseModel):
    key: str
    value: str = ""
    enabled: bool = True
    type: str = "default"


class Environment(BaseModel):
    name: str
    values: list[EnvironmentVariable] = Field(default_factory=list)


class EnvironmentFileError(Exception):
    """An environment file could not be read or parsed."""


def load_environment(path: str | Path) -> Environment:
    path = Path(path)
    try:
        return Environment.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise EnvironmentFileError(f"Failed to read {path}: {exc}") from exc
    except ValidationError as exc:
        raise EnvironmentFileError(f"Failed to parse {path}: {exc}") from exc


def load_environments(paths: list[str | Path]) -> list[Environment]:
    """Load every readable environment, skipping broken files."""
    environments: list[Environment] = []
    for path in paths:
        try:
            environments.append(load_environment(path))
        except EnvironmentFileError as exc:
            logger.warning("skipping environment file: %s", exc)
    environments.sort(key=lambda e: e.name)
    return environments


def resolve_variables(env: Environment | None) -> dict[str, str]:
    """Enabled variables of *env* as a lookup map."""
    if env is None:
        return {}
    return {var.key: var.value for var in env.values if var.enabled}


def substitute(template: str, variables: dict[str, str]) -> tuple[str, list[str]]:
    """Replace ``{{name}}`` with values from *variables*.

    Returns ``(text, unresolved_names)``. Unknown names, unclosed braces
    and ``{{}}`` are left in the text literally.
    """
    out: list[str] = []
    unresolved: list[str] = []
    i = 0
    n = len(template)
    while i < n:
        if template.startswith("{{", i):
            close = template.find("}}", i + 2)
            if close == -1:
                out.append(template[i:])
                break
            name = template[i + 2 : close]
            if name and name in variables:
                out.append(variables[name])
            else:
                out.append(template[i : close + 2])
                if name:
                    unresolved.append(name)
            i = close + 2
        else:
            out.append(template[i])
            i += 1
    return "".join(out), unresolved
