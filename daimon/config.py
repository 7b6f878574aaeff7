"""
Node Configuration
==================

Loads and validates the node configuration file.

TOML (default) or YAML, chosen by file suffix:

    port = 7135
    initial = [0.0, 0.0]
    downstream = ["10.0.0.2:7135", "10.0.0.3:7135"]

    [function]
    kind = "external_process"
    executable = "/usr/local/bin/smooth"
    input = { location = "stdin", format = "binary" }

Everything else in the node only ever sees a validated ``NodeConfig``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from daimon.client import DEFAULT_CONNECT_TIMEOUT, DEFAULT_IO_TIMEOUT, PeerAddress, parse_address
from daimon.errors import ConfigurationError
from daimon.models.function_spec import FunctionSpec, IdentitySpec
from daimon.protocol import MAX_SAMPLES
from daimon.server import DEFAULT_HOST, DEFAULT_PORT

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def default_config_path() -> Path:
    """``~/.config/daimon/config.toml``."""
    return Path.home() / ".config" / "daimon" / "config.toml"


class NodeConfig(BaseModel):
    """Validated configuration for one node."""

    model_config = ConfigDict(extra="forbid")

    # Where this node listens
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)

    # State the node starts with (propagated once at startup if non-empty)
    initial: List[float] = Field(default_factory=list)

    # Who receives this node's output, in order ("host:port")
    downstream: List[str] = Field(default_factory=list)

    # What the node computes
    function: FunctionSpec = Field(default_factory=IdentitySpec)

    # Timeouts in seconds; 0 disables
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT

    max_samples: int = Field(default=MAX_SAMPLES, gt=0)
    log_level: str = "INFO"

    @field_validator("downstream")
    @classmethod
    def _valid_addresses(cls, value: List[str]) -> List[str]:
        for address in value:
            try:
                parse_address(address)
            except ConfigurationError as e:
                raise ValueError(str(e)) from None
        return value

    @field_validator("connect_timeout", "io_timeout")
    @classmethod
    def _non_positive_disables(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def downstream_addresses(self) -> List[PeerAddress]:
        return [parse_address(a) for a in self.downstream]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> NodeConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid configuration:\n{e}") from e

    @classmethod
    def from_toml(cls, path: Path) -> NodeConfig:
        """Load config from a TOML file."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"{path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"{path}: not UTF-8 text: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"cannot read config {path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls, path: Path) -> NodeConfig:
        """Load config from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"{path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"{path}: not UTF-8 text: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"cannot read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: top level must be a mapping")
        return cls.from_dict(data)


def load_config(path: Optional[Path] = None) -> NodeConfig:
    """Load the node config from ``path`` (or the default location)."""
    path = Path(path) if path is not None else default_config_path()
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path}")

    if path.suffix.lower() in (".yaml", ".yml"):
        config = NodeConfig.from_yaml(path)
    else:
        config = NodeConfig.from_toml(path)

    logger.info(f"Loaded node config from {path}")
    return config
