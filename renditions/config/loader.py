import yaml
from pathlib import Path
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Accept a bare "ladder:" at the root as shorthand for general.ladder
    ladder = data.pop("ladder", None)
    if ladder is not None:
        data.setdefault("general", {})["ladder"] = ladder

    return AppConfig(**data)
