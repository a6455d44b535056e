"""Module registry: seeding, action tables, enable flags and settings access."""

from __future__ import annotations

import json
from typing import Any, Callable

from loguru import logger

from inbox_agent.modules.base import (
    ActionDescriptor,
    HandlerKind,
    HandlerRef,
    ModuleContext,
    ModuleDescriptor,
)
from inbox_agent.modules.loader import module_label
from inbox_agent.store.kv import KeyValueStore

INTEROP_SETTING = "allowModuleInterop"


def _module_key(name: str, *parts: str) -> str:
    return ".".join(["MODULE", name, *parts])


def coerce_setting_value(value: Any, declared_type: str | None = None) -> Any:
    """
    Best-effort coercion of an incoming setting value.

    Strings declared as `string` (or `secret`) are kept verbatim; any other
    string is parsed as JSON, falling back to the raw string.
    """
    if not isinstance(value, str):
        return value
    if (declared_type or "").lower() in {"string", "str", "secret", "text"}:
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


class ModuleRegistry:
    """
    Holds the active capability modules and their action tables.

    Module wiring happens once at process start; toggling a module's enabled
    flag only takes effect after a restart (see `ProcessControl`).
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._descriptors: dict[str, ModuleDescriptor] = {}

    # -- seeding ---------------------------------------------------------

    def seed(self, module: Any) -> None:
        """
        Seed statics and settings for a module without overwriting stored values.

        Declared setting metadata (type/required/description) is refreshed on
        every call; values and statics are written only when absent.
        """
        name = module_label(module)
        pending: dict[str, Any] = {}

        statics = dict(getattr(module, "statics", {}) or {})
        statics.setdefault("moduleName", name)
        statics.setdefault("displayName", getattr(module, "display_name", "") or name)
        statics.setdefault("controllerPath", self._mount_path(module))
        for key, value in statics.items():
            store_key = _module_key(name, "statics", key)
            if not self.store.has(store_key):
                pending[store_key] = value

        for key, spec in (getattr(module, "settings", {}) or {}).items():
            schema_key = _module_key(name, "schema", key)
            if self.store.get(schema_key) != spec.schema():
                pending[schema_key] = spec.schema()
            value_key = _module_key(name, "settings", key)
            if not self.store.has(value_key):
                pending[value_key] = spec.value
                logger.debug(f"Seeded setting {value_key}")

        self.store.set_many(pending)

    def _mount_path(self, module: Any) -> str:
        path = getattr(module, "mount_path", None)
        if isinstance(path, str) and path:
            return path
        return f"/{module_label(module)}"

    # -- registration ----------------------------------------------------

    def _build_method_table(
        self, module: Any, actions: list[ActionDescriptor]
    ) -> tuple[list[ActionDescriptor], dict[HandlerRef, Callable[..., Any]]]:
        name = module_label(module)
        kept: list[ActionDescriptor] = []
        methods: dict[HandlerRef, Callable[..., Any]] = {}
        for action in actions:
            ref = action.handler
            owner = module if ref.kind is HandlerKind.INSTANCE else type(module)
            handler = getattr(owner, ref.method, None)
            if not callable(handler):
                logger.warning(
                    f"Module '{name}' action '{action.name}' points to missing handler {ref}; skipping"
                )
                continue
            kept.append(action)
            methods[ref] = handler
        return kept, methods

    def register(self, module: Any, context: ModuleContext | None = None) -> ModuleDescriptor:
        """
        Seed, bind and register an enabled module.

        Repeat calls for the same module name return the existing descriptor.
        """
        name = module_label(module)
        self.seed(module)
        existing = self._descriptors.get(name)
        if existing is not None and existing.enabled:
            logger.warning(f"Module {name} is already registered.")
            return existing

        bind = getattr(module, "bind", None)
        if context is not None and callable(bind):
            bind(context)

        actions, methods = self._build_method_table(module, list(module.action_descriptors()))
        descriptor = ModuleDescriptor(
            instance=module,
            name=name,
            mount_path=self._mount_path(module),
            display_name=getattr(module, "display_name", "") or name,
            actions=actions,
            methods=methods,
            enabled=True,
        )
        self._descriptors[name] = descriptor
        logger.info(f"Registered module '{name}' at {descriptor.mount_path} ({len(actions)} actions)")
        return descriptor

    def get_empty_descriptor(self, module: Any) -> ModuleDescriptor:
        """Descriptor with no actions, for listing a disabled module without side effects."""
        name = module_label(module)
        return ModuleDescriptor(
            instance=module,
            name=name,
            mount_path=self._mount_path(module),
            display_name=getattr(module, "display_name", "") or name,
            enabled=False,
        )

    def load(self, modules: list[Any], context: ModuleContext | None = None) -> list[ModuleDescriptor]:
        """Register enabled modules and record disabled ones with empty descriptors."""
        loaded: list[ModuleDescriptor] = []
        for module in modules:
            name = module_label(module)
            if self.is_enabled(name):
                descriptor = self.register(module, context)
            else:
                self.seed(module)
                descriptor = self.get_empty_descriptor(module)
                self._descriptors.setdefault(name, descriptor)
                logger.info(f"Module '{name}' is disabled")
            loaded.append(descriptor)
        return loaded

    # -- lookup ----------------------------------------------------------

    @property
    def descriptors(self) -> list[ModuleDescriptor]:
        return list(self._descriptors.values())

    def get_descriptor(self, name: str) -> ModuleDescriptor | None:
        return self._descriptors.get(name)

    def get_action_descriptors(self, module_name: str) -> list[ActionDescriptor]:
        """Action table of a registered module; empty with a warning when unknown."""
        descriptor = self._descriptors.get(module_name)
        if descriptor is None:
            logger.warning(f"Module {module_name} is not registered.")
            return []
        return list(descriptor.actions)

    def resolve_handler(self, module_name: str, action_name: str) -> tuple[ActionDescriptor, Callable[..., Any]] | None:
        """Find an action and its bound handler, or None when either is missing."""
        descriptor = self._descriptors.get(module_name)
        if descriptor is None or not descriptor.enabled:
            return None
        action = descriptor.find_action(action_name)
        if action is None:
            return None
        handler = descriptor.methods.get(action.handler)
        if handler is None:
            return None
        return action, handler

    def get_user_data(self, user_id: str) -> dict[str, Any]:
        """Merge per-user data from modules that opt in to cross-module sharing."""
        merged: dict[str, Any] = {}
        for descriptor in self._descriptors.values():
            if not descriptor.enabled:
                continue
            provider = getattr(descriptor.instance, "get_user_data", None)
            if not callable(provider):
                continue
            if not self.get_setting(descriptor.name, INTEROP_SETTING, False):
                continue
            try:
                data = provider(user_id)
            except Exception as e:
                logger.warning(f"Module '{descriptor.name}' user data lookup failed: {e}")
                continue
            if isinstance(data, dict) and data:
                merged.update(data)
        return merged

    # -- enable flag -----------------------------------------------------

    def is_enabled(self, module_name: str) -> bool:
        value = self.store.get(_module_key(module_name, "enabled"), True)
        return bool(value)

    def set_enabled(self, module_name: str, enabled: bool) -> bool:
        """Persist the enabled flag. Returns True when the stored value changed."""
        changed = self.is_enabled(module_name) != bool(enabled)
        self.store.set(_module_key(module_name, "enabled"), bool(enabled))
        logger.info(f"Module '{module_name}' {'enabled' if enabled else 'disabled'} (restart required)")
        return changed

    # -- settings --------------------------------------------------------

    def get_setting(self, module_name: str, key: str, default: Any = None) -> Any:
        value = self.store.get(_module_key(module_name, "settings", key))
        return default if value is None else value

    def get_statics(self, module_name: str) -> dict[str, Any]:
        prefix = _module_key(module_name, "statics") + "."
        return {k[len(prefix):]: v for k, v in self.store.get_matching(prefix).items()}

    def get_settings(self, module_name: str) -> dict[str, dict[str, Any]]:
        """Every setting expanded to {type, required, description, value}."""
        settings_prefix = _module_key(module_name, "settings") + "."
        schema_prefix = _module_key(module_name, "schema") + "."
        values = {k[len(settings_prefix):]: v for k, v in self.store.get_matching(settings_prefix).items()}
        schemas = {k[len(schema_prefix):]: v for k, v in self.store.get_matching(schema_prefix).items()}

        expanded: dict[str, dict[str, Any]] = {}
        for key in list(schemas) + [k for k in values if k not in schemas]:
            schema = schemas.get(key) if isinstance(schemas.get(key), dict) else {}
            expanded[key] = {
                "type": schema.get("type", "string"),
                "required": bool(schema.get("required", False)),
                "description": schema.get("description", ""),
                "value": values.get(key),
            }
        return expanded

    def update_settings(self, module_name: str, updates: dict[str, Any]) -> dict[str, Any]:
        """Persist a flat key->value map under the module's settings namespace."""
        schema_prefix = _module_key(module_name, "schema") + "."
        pending: dict[str, Any] = {}
        applied: dict[str, Any] = {}
        for key, raw in updates.items():
            schema = self.store.get(schema_prefix + str(key))
            declared = schema.get("type") if isinstance(schema, dict) else None
            if declared is None:
                logger.debug(f"Setting {module_name}.{key} is not declared; storing as-is")
            value = coerce_setting_value(raw, declared)
            pending[_module_key(module_name, "settings", str(key))] = value
            applied[str(key)] = value
        self.store.set_many(pending)
        return applied
