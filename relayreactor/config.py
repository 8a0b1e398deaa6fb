"""
Reactor configuration, loaded from YAML.

Example reactor.yaml:

    engine_address: "reactor:relay"
    native_asset: "0x0000000000000000000000000000000000000000"
    ledger_path: ".relayreactor/ledger"
    key_path: ".relayreactor/keys/engine.pem"
    require_signatures: true
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from relayreactor.core.exceptions import ConfigError
from relayreactor.core.models import NATIVE_ASSET


@dataclass(frozen=True)
class ReactorConfig:
    engine_address:     str = "reactor:relay"
    native_asset:       str = NATIVE_ASSET
    ledger_path:        Path = Path(".relayreactor/ledger")
    key_path:           Optional[Path] = Path(".relayreactor/keys/engine.pem")
    require_signatures: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReactorConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

        known   = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError("Unknown config keys", {"keys": ", ".join(unknown)})

        for name in ("engine_address", "native_asset"):
            if name in data and (not isinstance(data[name], str) or not data[name]):
                raise ConfigError(f"{name} must be a non-empty string")

        if "require_signatures" in data and not isinstance(data["require_signatures"], bool):
            raise ConfigError("require_signatures must be true or false")

        kwargs = dict(data)
        if "ledger_path" in kwargs:
            if not kwargs["ledger_path"]:
                raise ConfigError("ledger_path must not be empty")
            kwargs["ledger_path"] = Path(kwargs["ledger_path"])
        if "key_path" in kwargs and kwargs["key_path"] is not None:
            kwargs["key_path"] = Path(kwargs["key_path"])
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, config_file: Path) -> "ReactorConfig":
        """Load config from a YAML file. An empty file yields the defaults."""
        config_file = Path(config_file)
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {config_file}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_file}: {exc}") from exc
        return cls.from_dict(data or {})
