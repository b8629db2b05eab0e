"""Dotted path imports."""

import importlib
from typing import Any

__all__ = ("import_string",)


def import_string(dotted_path: str) -> "Any":
    """Dotted Path Import.

    Import ``package.module:attribute`` (or ``package.module.attribute``) and
    return the attribute.

    Args:
        dotted_path: The path of the object to import.

    Raises:
        ImportError: Could not import the module or find the attribute.

    Returns:
        object: The imported object.
    """
    if ":" in dotted_path:
        module_path, _, attribute = dotted_path.partition(":")
    else:
        module_path, _, attribute = dotted_path.rpartition(".")
    if not module_path or not attribute:
        msg = f"{dotted_path} doesn't look like a module path"
        raise ImportError(msg)
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        msg = f"Module '{module_path}' has no attribute '{attribute}' in '{dotted_path}'"
        raise ImportError(msg) from e
