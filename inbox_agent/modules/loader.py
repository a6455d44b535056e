"""Capability module discovery from Python entry points."""

from __future__ import annotations

from importlib import metadata as importlib_metadata
from typing import Any, Callable, Iterable

from loguru import logger

from inbox_agent.modules.base import ModuleBase

EntryPointProvider = Callable[[str], Iterable[Any]]

ENTRY_POINT_GROUP = "inbox_agent.modules"


def _default_entry_points(group: str) -> list[Any]:
    return list(importlib_metadata.entry_points().select(group=group))


def _is_module_instance(value: Any) -> bool:
    """Return True when value looks like a capability module instance."""
    if isinstance(value, ModuleBase):
        return True
    return bool(getattr(value, "name", "")) and callable(getattr(value, "action_descriptors", None))


def _coerce_module(entry_name: str, loaded: Any) -> Any:
    """Convert a loaded entry point object (class, factory or instance) into a module."""
    candidate = loaded
    if isinstance(candidate, type):
        candidate = candidate()
    elif callable(candidate) and not _is_module_instance(candidate):
        candidate = candidate()

    if not _is_module_instance(candidate):
        raise TypeError(
            f"Entry point '{entry_name}' did not resolve to a module instance "
            "(missing name/action_descriptors)."
        )
    return candidate


def module_label(module: Any) -> str:
    """Stable module display label."""
    label = str(getattr(module, "name", "")).strip()
    return label or module.__class__.__name__


def load_installed_modules(
    group: str = ENTRY_POINT_GROUP,
    entry_points_provider: EntryPointProvider | None = None,
) -> list[Any]:
    """Load capability modules from Python entry points."""
    provider = entry_points_provider or _default_entry_points
    loaded_modules: list[Any] = []
    seen_labels: set[str] = set()

    for entry_point in sorted(provider(group), key=lambda item: getattr(item, "name", "")):
        entry_name = getattr(entry_point, "name", "<unknown>")
        try:
            module = _coerce_module(entry_name, entry_point.load())
        except Exception as exc:
            logger.warning(f"Failed to load module entry point '{entry_name}': {exc}")
            continue
        label = module_label(module)
        if label in seen_labels:
            logger.warning(f"Skipping duplicate module '{label}' from entry point '{entry_name}'")
            continue
        seen_labels.add(label)
        loaded_modules.append(module)
        logger.info(f"Loaded module '{label}' from entry point '{entry_name}'")
    return loaded_modules


def filter_modules(
    modules: list[Any],
    *,
    allow: list[str] | None = None,
    deny: list[str] | None = None,
) -> list[Any]:
    """Filter modules using allow/deny policy and drop duplicate names."""
    allow_set = {item.strip().lower() for item in (allow or []) if item and item.strip()}
    deny_set = {item.strip().lower() for item in (deny or []) if item and item.strip()}
    selected: list[Any] = []
    seen: set[str] = set()
    for module in modules:
        label = module_label(module)
        key = label.lower()
        if allow_set and key not in allow_set:
            logger.debug(f"Skipping module '{label}' (not in allow list)")
            continue
        if key in deny_set:
            logger.debug(f"Skipping module '{label}' (deny list)")
            continue
        if key in seen:
            logger.warning(f"Skipping duplicate module '{label}'")
            continue
        seen.add(key)
        selected.append(module)
    return selected
