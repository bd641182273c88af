"""Tests for the permission registry and its YAML loader."""

from pathlib import Path

import pytest

from orgauthz.errors import RegistryConfigError
from orgauthz.permissions.registry import PermissionRegistry, load_registry, load_registry_file


def test_registry_file_loads_catalog(registry_file):
    registry = registry_file.registry
    assert len(registry) == 22
    assert registry.position_of("profile.view") == 0
    assert registry.position_of("org.settings") == 12
    assert registry.position_of("support.priority") == 21
    assert registry.codes[0] == "profile.view"

    addons = {p.code for p in registry_file.permissions if p.is_addon}
    assert addons == {"integrations.zapier", "integrations.slack", "storage.extended", "support.priority"}

    tiers = {t.slug: t.base_permissions for t in registry_file.tiers}
    assert tiers == {"user": 0b11, "web": 0b11111, "app": 0b111111111, "crm": 0b111111111111}


def test_no_two_codes_share_a_position(registry):
    positions = [pos for _code, pos in registry.items()]
    assert len(positions) == len(set(positions))


def test_unknown_code_is_not_found(registry):
    assert registry.position_of("does.not.exist") is None
    assert "does.not.exist" not in registry


def test_reused_position_rejected():
    with pytest.raises(RegistryConfigError, match="reuses bit 0"):
        PermissionRegistry({"a": 0, "b": 0})


@pytest.mark.parametrize("pos", [-1, 64])
def test_out_of_range_position_rejected(pos):
    with pytest.raises(RegistryConfigError):
        PermissionRegistry({"a": pos})


def test_with_code_appends_at_next_unused_position(registry):
    extended = registry.with_code("reports.custom")
    assert extended.position_of("reports.custom") == 22
    # Existing codes never move; the source registry is untouched.
    assert all(extended.position_of(code) == pos for code, pos in registry.items())
    assert "reports.custom" not in registry


def test_with_code_skips_gaps_rather_than_reusing_them():
    registry = PermissionRegistry({"a": 0, "b": 5})
    assert registry.with_code("c").position_of("c") == 6


def test_with_code_rejects_existing_code(registry):
    with pytest.raises(RegistryConfigError, match="already registered"):
        registry.with_code("profile.view")


def test_registry_is_full_at_64_codes():
    registry = PermissionRegistry.from_codes(f"p{i}" for i in range(64))
    assert registry.position_of("p63") == 63
    with pytest.raises(RegistryConfigError, match="full"):
        registry.with_code("p64")


def test_mask_for(registry):
    assert registry.mask_for(["profile.view", "analytics.view"]) == 0b101
    with pytest.raises(RegistryConfigError):
        registry.mask_for(["nope"])


def test_loader_rejects_duplicate_bits(tmp_path: Path):
    path = tmp_path / "perms.yaml"
    path.write_text("permissions:\n  a: {bit: 1}\n  b: {bit: 1}\n", encoding="utf-8")
    with pytest.raises(RegistryConfigError):
        load_registry(path)


def test_loader_requires_explicit_bit(tmp_path: Path):
    path = tmp_path / "perms.yaml"
    path.write_text("permissions:\n  a: {name: A}\n", encoding="utf-8")
    with pytest.raises(RegistryConfigError, match="explicit bit"):
        load_registry(path)


def test_loader_rejects_tier_with_unknown_code(tmp_path: Path):
    path = tmp_path / "perms.yaml"
    path.write_text(
        "permissions:\n  a: {bit: 0}\ntiers:\n  basic: {permissions: [a, b]}\n",
        encoding="utf-8",
    )
    with pytest.raises(RegistryConfigError, match="tier 'basic'"):
        load_registry_file(path)
