"""Persisted storage for the operator's gateway bearer token."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from typing import Any

import yaml
from platformdirs import user_data_dir


logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "token.yaml"


def token_path(app_name: str, filename: str = DEFAULT_FILENAME) -> str:
    """Default location of the token file, creating its directory if needed."""
    data_dir = user_data_dir(app_name)
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, filename)


def _is_yaml(path: str) -> bool:
    return path.endswith((".yaml", ".yml"))


def token_writer(path: str) -> Callable[[dict[str, Any]], None]:
    """Return a callable persisting a token payload to ``path``.

    The format follows the extension: YAML for ``.yaml``/``.yml``, JSON
    otherwise. Empty payloads are ignored.
    """

    def write(token: dict[str, Any]) -> None:
        if not token:
            return

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            if _is_yaml(path):
                yaml.safe_dump(token, f, explicit_start=True)
            else:
                json.dump(token, f)
        logger.debug("Wrote token file %s", path)

    return write


def token_loader(path: str) -> Callable[[], dict[str, Any]]:
    """Return a callable reading the token payload stored at ``path``."""

    def load() -> dict[str, Any]:
        with open(path) as f:
            try:
                if _is_yaml(path):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except yaml.YAMLError as exc:
                raise ValueError(f"Token file {path} is not valid YAML") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Token file {path} does not contain a mapping")
        return data

    return load


def save_token(path: str, token: str) -> None:
    token_writer(path)({"token": token})


def load_token(path: str) -> str | None:
    """Stored bearer token, or ``None`` when no token file exists."""
    if not os.path.exists(path):
        return None
    token = token_loader(path)().get("token")
    return str(token) if token else None


__all__ = ["load_token", "save_token", "token_loader", "token_path", "token_writer"]
