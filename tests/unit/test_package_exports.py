import importlib
import types

import pytest

SINGLETONS = [
    ("app.infrastructure.audit.system_log", "system_logger"),
    ("app.features.attribution.repository.attribution_store_repository", "attribution_store"),
    ("app.features.attribution.services.client_sync", "client_sync_service"),
    ("app.features.attribution.services.personal_domains", "personal_domain_classifier"),
    ("app.features.attribution.services.review_workflow", "review_service"),
    ("app.features.attribution.services.timeline_service", "domain_timeline_service"),
]


@pytest.mark.parametrize("module_path, instance_name", SINGLETONS)
def test_exported_singletons_leave_submodules_reachable(module_path, instance_name):
    package_path, module_name = module_path.rsplit(".", 1)
    package = importlib.import_module(package_path)
    module = importlib.import_module(module_path)

    assert isinstance(getattr(package, module_name), types.ModuleType)
    assert getattr(package, instance_name) is getattr(module, instance_name)


def test_module_level_patch_reaches_the_singleton_module(monkeypatch):
    monkeypatch.setattr(
        "app.features.attribution.services.review_workflow.AUTO_CONFIRM_ACTOR", "patched"
    )

    module = importlib.import_module("app.features.attribution.services.review_workflow")
    assert module.AUTO_CONFIRM_ACTOR == "patched"
