"""CLI configuration merged from the config file, environment and flags."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace
from typing import Any
from urllib.parse import urlparse

import yaml
from platformdirs import user_config_dir


logger = logging.getLogger(__name__)

APP_NAME = "jwctl"
ENV_PREFIX = "JW_"
CONFIG_FILENAME = "config.yaml"

_FLOAT_FIELDS = ("timeout", "stage_timeout", "request_timeout")


def config_path(app_name: str = APP_NAME) -> str:
    return os.path.join(user_config_dir(app_name), CONFIG_FILENAME)


@dataclass(frozen=True, slots=True)
class GatewayConfig:
    """Connection settings for the gateway and the approval workflow."""

    url: str = "http://localhost:4004"
    token: str | None = None

    # Overall budget for one approval, operator time included.
    timeout: float = 60.0
    # Minimum budget for each network stage of the approval workflow.
    stage_timeout: float = 15.0
    request_timeout: float = 10.0

    @classmethod
    def load(
        cls,
        *,
        path: str | None = None,
        env: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
        stored_token: str | None = None,
    ) -> GatewayConfig:
        """Merge configuration sources.

        In increasing precedence: defaults, ``stored_token``, the YAML file at
        ``path`` (missing files are skipped), ``JW_*`` environment variables,
        then ``overrides`` whose value is not ``None``.
        """
        config = cls(token=stored_token)
        if path is not None:
            config = config.merge(_read_file(path))
        config = config.merge(_read_env(os.environ if env is None else env))
        if overrides:
            config = config.merge(overrides)
        return config

    def merge(self, values: Mapping[str, Any]) -> GatewayConfig:
        known = {
            key: value
            for key, value in values.items()
            if key in self.__dataclass_fields__ and value is not None
        }
        for key in _FLOAT_FIELDS:
            if key in known:
                try:
                    known[key] = float(known[key])
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"{key} must be a number, got {known[key]!r}") from exc
        if "url" in known:
            known["url"] = str(known["url"])
        if "token" in known:
            known["token"] = str(known["token"]) or None
        return replace(self, **known)

    def validate(self) -> list[str]:
        """Return a list of validation errors, empty if valid."""
        errors: list[str] = []
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"url must be an http(s) URL, got {self.url!r}")
        for key in _FLOAT_FIELDS:
            if getattr(self, key) <= 0:
                errors.append(f"{key} must be positive")
        return errors

    def redacted(self) -> dict[str, Any]:
        """Configuration as a dict with the token masked."""
        values = asdict(self)
        if values.get("token"):
            values["token"] = "********"
        return values


def _read_file(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        logger.debug("No configuration file at %s", path)
        return {}

    logger.debug("Loading configuration from %s", path)
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Configuration file {path} is not valid YAML") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def _read_env(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key in GatewayConfig.__dataclass_fields__:
        value = env.get(f"{ENV_PREFIX}{key.upper()}")
        if value:
            values[key] = value
    return values


__all__ = ["APP_NAME", "GatewayConfig", "config_path"]
