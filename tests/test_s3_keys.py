"""Tests for drivers/s3/keys.py: sub-path to object key mapping."""

from __future__ import annotations

import pytest

from cloudmount.drivers.s3.keys import (
    account_prefix,
    key_name,
    normalize_prefix,
    parent_key,
    to_object_key,
    to_sub_path,
)
from cloudmount.models.mounts import StorageConfig


class TestNormalizePrefix:
    @pytest.mark.parametrize(
        ("prefix", "expected"),
        [
            pytest.param("", "", id="empty"),
            pytest.param(None, "", id="none"),
            pytest.param("tenant", "tenant/", id="bare"),
            pytest.param("/tenant//a/", "tenant/a/", id="messy"),
            pytest.param("/", "", id="slash-only"),
        ],
    )
    def test_normalize(self, prefix: str | None, expected: str):
        assert normalize_prefix(prefix) == expected


class TestAccountPrefix:
    def test_root_prefix_and_default_folder(self):
        config = StorageConfig(root_prefix="/tenant/", default_folder="uploads")
        assert account_prefix(config) == "tenant/uploads/"

    def test_neither(self):
        assert account_prefix(StorageConfig()) == ""


class TestObjectKeys:
    def test_file_key(self):
        assert to_object_key("/reports/q1.pdf", "acct/") == "acct/reports/q1.pdf"

    def test_directory_key(self):
        assert to_object_key("/reports", "acct/", is_directory=True) == "acct/reports/"

    def test_mount_root_is_prefix(self):
        assert to_object_key("/", "acct/", is_directory=True) == "acct/"
        assert to_object_key("/", "") == ""

    def test_collapses_slashes(self):
        assert to_object_key("//a//b.txt") == "a/b.txt"

    def test_sub_path_round_trip(self):
        key = to_object_key("/a/b.txt", "acct/")
        assert to_sub_path(key, "acct/") == "/a/b.txt"


class TestKeyParts:
    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            pytest.param("a/b/c.txt", "a/b/", id="file"),
            pytest.param("a/b/", "a/", id="directory"),
            pytest.param("c.txt", "", id="top-level"),
        ],
    )
    def test_parent_key(self, key: str, expected: str):
        assert parent_key(key) == expected

    def test_key_name(self):
        assert key_name("a/b/c.txt") == "c.txt"
        assert key_name("a/b/") == "b"
