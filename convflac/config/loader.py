import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import ValidationError
from convflac.domain.errors import ConfigurationError
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    A missing default config is not an error: the built-in defaults apply.
    """
    if config_path is None or not config_path.exists():
        return AppConfig()

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    # Flat files (no 'general' section) are accepted too
    if "general" not in data:
        data = {"general": data}

    return build_config(data)


def build_config(data: Dict[str, Any]) -> AppConfig:
    try:
        return AppConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc


def apply_overrides(config: AppConfig, **overrides: Any) -> AppConfig:
    """Returns a new, re-validated AppConfig with CLI overrides applied.

    ``None`` values mean "not given on the command line".
    """
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return config
    general = config.general.model_dump()
    general.update(updates)
    return build_config({"general": general})


def _format_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "general")
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)
