"""Capability module SDK, loader and registry exports."""

from inbox_agent.modules.base import (
    ActionDescriptor,
    HandlerKind,
    HandlerRef,
    ModuleBase,
    ModuleContext,
    ModuleDescriptor,
    SettingSpec,
)
from inbox_agent.modules.loader import filter_modules, load_installed_modules, module_label
from inbox_agent.modules.registry import ModuleRegistry

__all__ = [
    "ActionDescriptor",
    "HandlerKind",
    "HandlerRef",
    "ModuleBase",
    "ModuleContext",
    "ModuleDescriptor",
    "ModuleRegistry",
    "SettingSpec",
    "filter_modules",
    "load_installed_modules",
    "module_label",
]
