"""Loader for Python declaration modules.

A declaration module exposes ``declare(registry)`` and registers its
components and operations through the registry it is handed.
"""

import importlib
import importlib.util
import logging
from pathlib import Path
from types import ModuleType

from api_contract.spec.errors import ContractCompileError, DeclarationError
from api_contract.spec.registry import SpecRegistry

logger = logging.getLogger(__name__)

HOOK = "declare"


def load_module(target: str, registry: SpecRegistry) -> SpecRegistry:
    """Import a .py file or dotted module and run its ``declare`` hook."""
    module = _import(target)
    declare = getattr(module, HOOK, None)
    if not callable(declare):
        raise DeclarationError(f"{target} does not define {HOOK}(registry)")
    try:
        declare(registry)
    except ContractCompileError:
        raise
    except Exception as e:
        raise DeclarationError(f"Invalid declaration in {target}: {e}") from e
    logger.info("Loaded declarations from %s", target)
    return registry


def _import(target: str) -> ModuleType:
    path = Path(target)
    if path.suffix != ".py":
        try:
            return importlib.import_module(target)
        except Exception as e:
            raise DeclarationError(f"Cannot import {target}: {e}") from e

    if not path.exists():
        raise DeclarationError(f"Declaration file not found: {target}")
    spec = importlib.util.spec_from_file_location(f"api_contract_declarations.{path.stem}", path)
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise DeclarationError(f"Cannot load {target}: {e}") from e
    return module
