"""Tests for provider profiles and botocore client configuration."""

from __future__ import annotations

import pytest

from cloudmount.drivers.s3.client import (
    PROVIDER_PROFILES,
    USER_AGENT_EXTRA,
    build_client_config,
    get_profile,
)


class TestProfiles:
    @pytest.mark.parametrize("provider", ["AWS", "R2", "B2", "ALIYUN_OSS", "OTHER"])
    def test_known_providers(self, provider: str):
        assert get_profile(provider) is PROVIDER_PROFILES[provider]

    def test_lookup_is_case_insensitive(self):
        assert get_profile("r2") is PROVIDER_PROFILES["R2"]

    @pytest.mark.parametrize("provider", [None, "", "MINIO"])
    def test_unknown_falls_back_to_other(self, provider: str | None):
        assert get_profile(provider) is PROVIDER_PROFILES["OTHER"]

    def test_b2_is_more_patient(self):
        b2 = get_profile("B2")
        assert b2.timeout > get_profile("OTHER").timeout
        assert b2.max_retries > get_profile("OTHER").max_retries

    def test_aws_default_region(self):
        assert get_profile("AWS").default_region == "us-east-1"
        assert get_profile("R2").default_region == "auto"


class TestBuildClientConfig:
    def test_common_options(self):
        config = build_client_config(get_profile("AWS"))
        assert config.signature_version == "s3v4"
        assert config.connect_timeout == 30
        assert config.read_timeout == 30
        assert config.retries == {"max_attempts": 3, "mode": "standard"}
        assert config.s3 == {"addressing_style": "auto"}
        assert USER_AGENT_EXTRA in config.user_agent_extra

    def test_path_style(self):
        config = build_client_config(get_profile("OTHER"), path_style=True)
        assert config.s3 == {"addressing_style": "path"}

    def test_checksums_only_when_required(self):
        config = build_client_config(get_profile("R2"))
        assert config.request_checksum_calculation == "when_required"
        assert config.response_checksum_validation == "when_required"

    def test_aws_keeps_default_checksums(self):
        config = build_client_config(get_profile("AWS"))
        assert config.request_checksum_calculation != "when_required"
