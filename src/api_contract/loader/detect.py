"""Auto-detect the kind of a declaration target."""

import json
from pathlib import Path

import yaml

from api_contract.spec.errors import DeclarationError

DOCUMENT_SUFFIXES = (".yaml", ".yml", ".json")


def detect_format(target: str) -> str:
    """Detect how a declaration target should be loaded.

    Returns: 'python' for a .py file or a dotted module name, 'openapi' for
    an OpenAPI 3 / Swagger 2 document in YAML or JSON.
    """
    path = Path(target)
    if path.suffix == ".py":
        return "python"
    if not path.exists():
        if path.suffix in DOCUMENT_SUFFIXES or "/" in target:
            raise DeclarationError(f"Declaration target not found: {target}")
        return "python"

    text = path.read_text(encoding="utf-8")

    # YAML is a superset of JSON, but report JSON syntax errors as such
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DeclarationError(f"Cannot parse {target}: {e}") from e

    if isinstance(data, dict) and ("openapi" in data or "swagger" in data):
        return "openapi"
    raise DeclarationError(f"{target} is neither a Python declaration module nor an OpenAPI document")
