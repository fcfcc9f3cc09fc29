"""Tests for caller identity and path scopes."""

from __future__ import annotations

from cloudmount.fs.permissions import CallerIdentity, CallerType


class TestCallerIdentity:
    def test_admin_sees_everything(self):
        caller = CallerIdentity.admin("root")
        assert caller.is_admin
        assert caller.can_access("/anything/at/all")
        assert caller.can_see_mount("/private")

    def test_scoped_prefix_is_normalized(self):
        caller = CallerIdentity.scoped("key-1", "docs//team")
        assert caller.allowed_path_prefix == "/docs/team"

    def test_scoped_access(self):
        caller = CallerIdentity.scoped("key-1", "/docs/team")
        assert caller.can_access("/docs/team/a.txt")
        assert caller.can_access("/docs/team")
        assert not caller.can_access("/docs/other.txt")
        assert not caller.can_access("/docs/teammate/a.txt")

    def test_scoped_sees_mounts_above_and_below_its_prefix(self):
        caller = CallerIdentity.scoped("key-1", "/docs/team")
        assert caller.can_see_mount("/docs")
        assert caller.can_see_mount("/docs/team/sub")
        assert not caller.can_see_mount("/archive")

    def test_cache_scope(self):
        assert CallerIdentity.scoped("key-1").cache_scope == ("scoped", "key-1")
        assert CallerIdentity.proxy().cache_scope is None

    def test_proxy(self):
        caller = CallerIdentity.proxy()
        assert caller.type == CallerType.PROXY
        assert caller.is_proxy
        assert caller.id is None
