from inbox_agent.modules.base import ModuleBase
from inbox_agent.modules.loader import filter_modules, load_installed_modules, module_label


class FakeEntryPoint:
    def __init__(self, name: str, target):
        self.name = name
        self.target = target

    def load(self):
        if isinstance(self.target, Exception):
            raise self.target
        return self.target


class BillingModule(ModuleBase):
    name = "billing"


class ShippingModule(ModuleBase):
    name = "shipping"


def test_load_installed_modules_handles_classes_factories_and_failures():
    entry_points = [
        FakeEntryPoint("a-billing", BillingModule),
        FakeEntryPoint("b-shipping", lambda: ShippingModule()),
        FakeEntryPoint("c-broken", ImportError("missing dependency")),
        FakeEntryPoint("d-junk", object()),
        FakeEntryPoint("e-billing-again", BillingModule()),
    ]
    modules = load_installed_modules(entry_points_provider=lambda _group: entry_points)
    assert [module_label(m) for m in modules] == ["billing", "shipping"]


def test_filter_modules_applies_allow_and_deny():
    modules = [BillingModule(), ShippingModule(), BillingModule()]
    assert [m.name for m in filter_modules(modules)] == ["billing", "shipping"]
    assert [m.name for m in filter_modules(modules, allow=["Shipping"])] == ["shipping"]
    assert [m.name for m in filter_modules(modules, deny=["billing"])] == ["shipping"]
