"""Context builder for assembling reasoning-service conversations."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from loguru import logger

from inbox_agent.agent.aggregator import Fragment
from inbox_agent.config.schema import DEFAULT_SYSTEM_PROMPT
from inbox_agent.modules.registry import ModuleRegistry
from inbox_agent.store.kv import KeyValueStore

SPEECH_FILE = "speech.txt"

OUTPUT_CONTRACT = """## Output Format
Reply with ONLY a JSON array of step objects. No prose, no Markdown, no code fences.
Each step has an "action" field. Supported actions:
- {"action": "ANSWER", "message": "<text to send to the customer>"}
- {"action": "UPDATE_USER_CONTEXT", "context": <object replacing everything you remember about this customer>}
Module actions listed below may also be used; pass their parameters as fields of the step.
Return [] when nothing should be done."""


class UserContextStore:
    """Per-module, per-user context blobs stored as `<user>.<module>.ucontext.json`."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def file_name(module_name: str, user_id: str) -> str:
        return f"{user_id}.{module_name}.ucontext.json"

    def load(self, module_name: str, user_id: str) -> Any:
        raw = self.store.load_file(self.file_name(module_name, user_id))
        if raw is None or not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    def save(self, module_name: str, user_id: str, context: Any) -> bool:
        """Replace the stored context in full."""
        content = context if isinstance(context, str) else json.dumps(context, ensure_ascii=False, indent=2)
        return self.store.save_file(self.file_name(module_name, user_id), content)


class ConversationBuilder:
    """
    Builds the conversation (role/content pairs) sent to the reasoning service.

    Assembles instructions, available actions, persona text, stored user
    context, shared user data and the batch of fragments.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        contexts: UserContextStore,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self.registry = registry
        self.contexts = contexts
        self.system_prompt = system_prompt

    def build(self, module_name: str, user_id: str, fragments: list[Fragment]) -> list[dict[str, str]]:
        """
        Build the conversation for one flushed batch.

        Args:
            module_name: Module that received the messages.
            user_id: Internal user id.
            fragments: Batch in arrival order.

        Returns:
            List of {"role", "content"} dicts.
        """
        messages = [{"role": "system", "content": self._instructions(module_name)}]

        speech = self.registry.store.load_file(SPEECH_FILE)
        if speech and speech.strip():
            messages.append({"role": "system", "content": f"# Persona\n\n{speech.strip()}"})

        messages.append({"role": "system", "content": self._context_data(module_name, user_id)})
        batch = [fragment.to_dict() for fragment in fragments]
        messages.append({"role": "user", "content": json.dumps(batch, ensure_ascii=False)})
        return messages

    def _instructions(self, module_name: str) -> str:
        now = datetime.now().strftime("%Y-%m-%d %H:%M (%A)")
        parts = [self.system_prompt.strip()]

        module_prompt = self.registry.get_setting(module_name, "systemPrompt", "")
        if isinstance(module_prompt, str) and module_prompt.strip():
            parts.append(module_prompt.strip())

        parts.append(OUTPUT_CONTRACT)

        actions = self.registry.get_action_descriptors(module_name)
        if actions:
            lines = [
                f"- {action.name}({', '.join(p for p in action.parameters if p != 'user_id')})"
                for action in actions
            ]
            parts.append("## Module Actions\n" + "\n".join(lines))

        parts.append(f"## Current Time\n{now}")
        return "\n\n".join(parts)

    def _context_data(self, module_name: str, user_id: str) -> str:
        payload: dict[str, Any] = {
            "channel": module_name,
            "userId": user_id,
            "module": self.registry.get_statics(module_name),
            "userContext": self.contexts.load(module_name, user_id),
            "userData": self.registry.get_user_data(user_id),
        }
        try:
            body = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize context data for {user_id}: {e}")
            body = "{}"
        return f"# Context Data\n\n{body}"
