import asyncio

import httpx
import pytest

from inbox_agent.agent.aggregator import Fragment
from inbox_agent.channels.graph import GraphMessagingGateway
from inbox_agent.channels.instagram import InstagramModule
from inbox_agent.channels.whatsapp import WhatsAppModule
from inbox_agent.identity.resolver import IdentityResolver
from inbox_agent.modules.base import ModuleContext
from inbox_agent.modules.registry import ModuleRegistry
from inbox_agent.store.kv import KeyValueStore


def _whatsapp_payload(*messages, contacts=None):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "contacts": contacts or [],
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


def _text(sender, body, ts="1700000000"):
    return {"from": sender, "id": f"wamid.{body}", "timestamp": ts, "type": "text", "text": {"body": body}}


class _Harness:
    def __init__(self, tmp_path, module, *, settings=None, transport=None):
        self.store = KeyValueStore(tmp_path / "store")
        self.registry = ModuleRegistry(self.store)
        self.identity = IdentityResolver(self.store)
        self.batches: list[tuple[str, str, list[str]]] = []
        self.module = module
        self.registry.seed(module)
        self.registry.update_settings(module.name, {"debounceSeconds": 0.02, **(settings or {})})
        gateway = GraphMessagingGateway(transport=transport) if transport else None
        self.context = ModuleContext(
            store=self.store,
            registry=self.registry,
            identity=self.identity,
            gateway=gateway,
            on_batch=self._on_batch,
        )

    async def _on_batch(self, module_name: str, user_id: str, fragments: list[Fragment]) -> None:
        self.batches.append((module_name, user_id, [f.content for f in fragments]))

    def register(self):
        self.registry.register(self.module, self.context)


def test_whatsapp_webhook_buffers_and_flushes_per_user(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule())

    async def scenario():
        harness.register()
        pushed = harness.module.handle_webhook(_whatsapp_payload(_text("555", "hi"), _text("555", "there")))
        pushed += harness.module.handle_webhook(_whatsapp_payload(_text("777", "yo")))
        await asyncio.sleep(0.1)
        await harness.module.close()
        return pushed

    assert asyncio.run(scenario()) == 3
    user_555 = harness.identity.lookup("whatsapp:555")
    user_777 = harness.identity.lookup("whatsapp:777")
    assert sorted(harness.batches) == sorted(
        [("whatsapp", user_555, ["hi", "there"]), ("whatsapp", user_777, ["yo"])]
    )


def test_whatsapp_contact_aliases_are_merged(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule())
    existing = harness.identity.resolve("whatsapp:BSUID-1")

    async def scenario():
        harness.register()
        payload = _whatsapp_payload(
            _text("555", "hello"),
            contacts=[{"wa_id": "555", "user_id": "BSUID-1", "profile": {"name": "Ana"}}],
        )
        harness.module.handle_webhook(payload)
        await harness.module.close()

    asyncio.run(scenario())
    assert harness.identity.lookup("whatsapp:555") == existing
    assert harness.batches[0][1] == existing
    assert harness.module.recipient_for(existing) == "555"


def test_non_text_and_disallowed_senders_are_ignored(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule(), settings={"allowFrom": '["+1 555"]'})

    async def scenario():
        harness.register()
        image = {"from": "1555", "type": "image", "image": {"id": "m1"}}
        count = harness.module.handle_webhook(_whatsapp_payload(image, _text("999", "spam"), _text("1555", "ok")))
        await harness.module.close()
        return count

    assert asyncio.run(scenario()) == 1
    assert [b[2] for b in harness.batches] == [["ok"]]
    assert harness.identity.lookup("whatsapp:999") is None


def test_verify_webhook_handshake(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule(), settings={"verifyToken": "s3cret"})
    harness.register()
    module = harness.module
    ok = {"hub.mode": "subscribe", "hub.verify_token": "s3cret", "hub.challenge": "12345"}
    assert module.verify_webhook(ok) == (200, "12345")
    assert module.verify_webhook({**ok, "hub.verify_token": "wrong"}) == (403, "")
    assert module.verify_webhook({**ok, "hub.mode": "unsubscribe"}) == (403, "")


def test_instagram_messaging_events(tmp_path):
    harness = _Harness(tmp_path, InstagramModule())

    async def scenario():
        harness.register()
        payload = {
            "object": "instagram",
            "entry": [
                {
                    "id": "IG",
                    "messaging": [
                        {"sender": {"id": "IGSID-7"}, "timestamp": 1700000000123, "message": {"mid": "m1", "text": "hey"}},
                        {"sender": {"id": "PAGE"}, "timestamp": 1700000000200, "message": {"text": "echo", "is_echo": True}},
                    ],
                }
            ],
        }
        count = harness.module.handle_webhook(payload)
        await harness.module.close()
        return count

    assert asyncio.run(scenario()) == 1
    user_id = harness.identity.lookup("instagram:IGSID-7")
    assert harness.batches == [("instagram", user_id, ["hey"])]


def test_send_message_handler_uses_module_credentials(tmp_path):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "x"}]})

    harness = _Harness(
        tmp_path,
        InstagramModule(),
        settings={"accessToken": "ig-token", "phoneNumberId": "4242"},
        transport=httpx.MockTransport(handler),
    )

    async def scenario():
        harness.register()
        user_id = harness.identity.resolve("instagram:IGSID-1")
        await harness.module.send_message_handler(user_id, "thanks!")

    asyncio.run(scenario())
    assert requests[0].url.path.endswith("/4242/messages")
    assert requests[0].headers["Authorization"] == "Bearer ig-token"
    assert b'"to":"IGSID-1"' in requests[0].content.replace(b" ", b"")
    assert b'"messaging_product":"instagram"' in requests[0].content.replace(b" ", b"")


def test_user_data_exposes_channel_recipient(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule(), settings={"allowModuleInterop": "true"})

    async def scenario():
        harness.register()
        user_id = harness.identity.resolve("whatsapp:555")
        data = harness.registry.get_user_data(user_id)
        await harness.module.close()
        return data

    assert asyncio.run(scenario()) == {"whatsapp": {"externalId": "555"}}


def test_malformed_text_entry_is_skipped(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule())

    async def scenario():
        harness.register()
        broken = {"from": "555", "type": "text", "text": "plain string"}
        count = harness.module.handle_webhook(_whatsapp_payload(broken, _text("555", "valid")))
        await harness.module.close()
        return count

    assert asyncio.run(scenario()) == 1
    assert [b[2] for b in harness.batches] == [["valid"]]


@pytest.mark.asyncio
async def test_recipient_comes_from_identity_map(tmp_path):
    harness = _Harness(tmp_path, WhatsAppModule())
    harness.register()
    harness.module.handle_webhook(_whatsapp_payload(_text("555", "hi")))
    await harness.module.close()
    user_id = harness.identity.lookup("whatsapp:555")

    restarted = _Harness(tmp_path, WhatsAppModule())
    restarted.register()
    assert restarted.module.recipient_for(user_id) == "555"
    assert restarted.module.recipient_for("unknown-user") is None
    await restarted.module.close()
