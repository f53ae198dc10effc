# mindmate/infra/yaml_io.py
import os
from pathlib import Path
from typing import Any
import yaml

def load_yaml(path: Path, default: Any = None) -> Any:
    """Load a YAML file; a missing or empty file gives `default`."""
    if not path.exists() or path.stat().st_size == 0:
        return default

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return default if data is None else data

def save_yaml(path: Path, data: Any) -> None:
    """Write through a sibling temp file so readers never see half a document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
    os.replace(tmp_path, path)
