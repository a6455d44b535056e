"""Capability module SDK: declarations, action descriptors and handler references."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from inbox_agent.agent.aggregator import Fragment
    from inbox_agent.channels.graph import GraphMessagingGateway
    from inbox_agent.identity.resolver import IdentityResolver
    from inbox_agent.modules.registry import ModuleRegistry
    from inbox_agent.server.http import Route
    from inbox_agent.store.kv import KeyValueStore

BatchHandler = Callable[[str, str, list["Fragment"]], Awaitable[Any]]


class HandlerKind(str, Enum):
    """Where a handler lives on its module."""

    INSTANCE = "instance"
    STATIC = "static"


_PREFIXES = {"@": HandlerKind.INSTANCE, "#": HandlerKind.STATIC}


@dataclass(frozen=True, slots=True)
class HandlerRef:
    """Tagged reference to a module method, resolved once at registration."""

    kind: HandlerKind
    method: str

    @classmethod
    def instance(cls, method: str) -> "HandlerRef":
        return cls(HandlerKind.INSTANCE, method)

    @classmethod
    def static(cls, method: str) -> "HandlerRef":
        return cls(HandlerKind.STATIC, method)

    @classmethod
    def parse(cls, raw: "str | HandlerRef") -> "HandlerRef":
        """Accept the declarative `@method` / `#method` notation."""
        if isinstance(raw, HandlerRef):
            return raw
        text = str(raw or "").strip()
        kind = _PREFIXES.get(text[:1])
        method = text[1:].strip()
        if kind is None or not method.isidentifier():
            raise ValueError(f"Invalid handler reference: {raw!r} (expected '@method' or '#method')")
        return cls(kind, method)

    def __str__(self) -> str:
        prefix = "@" if self.kind is HandlerKind.INSTANCE else "#"
        return f"{prefix}{self.method}"


@dataclass(frozen=True, slots=True)
class ActionDescriptor:
    """An action a module exposes to the reasoning service."""

    name: str
    parameters: tuple[str, ...]
    handler: HandlerRef

    @classmethod
    def declare(cls, name: str, parameters: list[str] | tuple[str, ...], handler: "str | HandlerRef") -> "ActionDescriptor":
        return cls(name=name, parameters=tuple(parameters), handler=HandlerRef.parse(handler))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "parameters": list(self.parameters), "handler": str(self.handler)}


@dataclass(slots=True)
class SettingSpec:
    """Declared module setting; `value` is the first-boot default."""

    type: str = "string"
    required: bool = False
    description: str = ""
    value: Any = None

    def schema(self) -> dict[str, Any]:
        return {"type": self.type, "required": self.required, "description": self.description}


@dataclass(slots=True)
class ModuleContext:
    """Runtime collaborators handed to modules when they are bound."""

    store: KeyValueStore
    registry: ModuleRegistry
    identity: IdentityResolver | None = None
    gateway: GraphMessagingGateway | None = None
    on_batch: BatchHandler | None = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ModuleDescriptor:
    """Registry record of a module: identity, mount point and callable actions."""

    instance: Any
    name: str
    mount_path: str
    display_name: str = ""
    actions: list[ActionDescriptor] = field(default_factory=list)
    methods: dict[HandlerRef, Callable[..., Any]] = field(default_factory=dict)
    enabled: bool = True

    def find_action(self, action_name: str) -> ActionDescriptor | None:
        for action in self.actions:
            if action.name == action_name:
                return action
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name or self.name,
            "mountPath": self.mount_path,
            "enabled": self.enabled,
            "actions": [a.to_dict() for a in self.actions],
        }


class ModuleBase:
    """
    Base class for capability modules.

    Subclasses declare their identity, settings and actions as class
    attributes. Optional capabilities are discovered by attribute:
    `get_user_data(user_id)` shares per-user data with other modules and
    `routes()` contributes public HTTP routes.
    """

    name: str = "unnamed-module"
    display_name: str = ""
    controller_path: str = ""
    settings: dict[str, SettingSpec] = {}
    statics: dict[str, Any] = {}

    def __init__(self) -> None:
        self.context: ModuleContext | None = None

    @property
    def mount_path(self) -> str:
        raw = (self.controller_path or f"/{self.name}").strip()
        return raw if raw.startswith("/") else f"/{raw}"

    def action_descriptors(self) -> list[ActionDescriptor]:
        """Actions this module exposes to the reasoning service."""
        return []

    def bind(self, context: ModuleContext) -> None:
        """Attach runtime collaborators. Called once, only for enabled modules."""
        self.context = context

    def setting(self, key: str, default: Any = None) -> Any:
        """Read this module's current setting value from the store."""
        if self.context is None:
            spec = self.settings.get(key)
            return spec.value if spec is not None and spec.value is not None else default
        return self.context.registry.get_setting(self.name, key, default)

    async def close(self) -> None:
        """Release resources on shutdown."""
        return
