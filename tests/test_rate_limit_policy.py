"""Tests for rate limit policy validation and presets."""

from dataclasses import FrozenInstanceError, replace

import pytest

from todo_service.core.errors import ConfigurationAppError
from todo_service.pipeline.keys import address_and_route_key, client_address_key, forwarded_for_key
from todo_service.pipeline.rate_limit import (
    AUTH_ATTEMPT_POLICY,
    DEFAULT_MESSAGE,
    DEFAULT_POLICY,
    STRICT_POLICY,
    RateLimitPolicy,
    format_reset_iso,
    should_give_back,
)


class TestPolicyDefaults:
    def test_default_values(self) -> None:
        assert DEFAULT_POLICY.window_ms == 900_000
        assert DEFAULT_POLICY.max_requests == 100
        assert DEFAULT_POLICY.key_generator is client_address_key
        assert DEFAULT_POLICY.skip_successful_requests is False
        assert DEFAULT_POLICY.skip_failed_requests is False
        assert DEFAULT_POLICY.scope.is_global
        assert DEFAULT_POLICY.message == DEFAULT_MESSAGE
        assert DEFAULT_POLICY.standard_headers is True
        assert DEFAULT_POLICY.legacy_headers is False

    def test_strict_preset_targets_writes(self) -> None:
        assert STRICT_POLICY.window_ms == 300_000
        assert STRICT_POLICY.max_requests == 10
        assert STRICT_POLICY.scope.only_methods == ("POST", "PUT", "PATCH", "DELETE")

    def test_auth_attempt_preset_counts_failures_only(self) -> None:
        assert AUTH_ATTEMPT_POLICY.max_requests == 5
        assert AUTH_ATTEMPT_POLICY.skip_successful_requests is True
        assert AUTH_ATTEMPT_POLICY.skip_authenticated_requests is True
        assert AUTH_ATTEMPT_POLICY.message == "Too many authentication attempts"

    def test_policy_is_immutable(self) -> None:
        with pytest.raises(FrozenInstanceError):
            DEFAULT_POLICY.max_requests = 1  # type: ignore[misc]


class TestPolicyValidation:
    @pytest.mark.parametrize(
        "kwargs, code",
        [
            ({"max_requests": -1}, "invalid_max_requests"),
            ({"window_ms": 0}, "invalid_window"),
            ({"name": ""}, "invalid_policy_name"),
            ({"max_requests": 0}, "zero_quota_not_allowed"),
            ({"key_generator": "client"}, "invalid_key_generator"),
        ],
    )
    def test_invalid_configuration_is_rejected(self, kwargs: dict, code: str) -> None:
        with pytest.raises(ConfigurationAppError) as exc_info:
            RateLimitPolicy(**kwargs)

        assert exc_info.value.code == code

    def test_zero_quota_requires_explicit_intent(self) -> None:
        policy = RateLimitPolicy(max_requests=0, allow_zero_quota=True)

        assert policy.max_requests == 0

    def test_replace_revalidates(self) -> None:
        with pytest.raises(ConfigurationAppError):
            replace(DEFAULT_POLICY, max_requests=-3)


class TestHelpers:
    def test_reset_is_iso_utc_with_milliseconds(self) -> None:
        assert format_reset_iso(1060.0) == "1970-01-01T00:17:40.000Z"
        assert format_reset_iso(1700000000.25) == "2023-11-14T22:13:20.250Z"

    @pytest.mark.parametrize(
        "skip_success, skip_failure, status_code, expected",
        [
            (False, False, 200, False),
            (True, False, 201, True),
            (True, False, 404, False),
            (False, True, 400, True),
            (False, True, 500, True),
            (False, True, 302, False),
            (True, True, 302, False),
        ],
    )
    def test_should_give_back(
        self, skip_success: bool, skip_failure: bool, status_code: int, expected: bool
    ) -> None:
        policy = RateLimitPolicy(
            skip_successful_requests=skip_success,
            skip_failed_requests=skip_failure,
        )

        assert should_give_back(policy, status_code) is expected


class TestKeyGenerators:
    def test_client_address(self, make_context) -> None:
        assert client_address_key(make_context(client="10.0.0.7")) == "10.0.0.7"

    def test_forwarded_for_uses_first_hop(self, make_context) -> None:
        ctx = make_context(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

        assert forwarded_for_key(ctx) == "203.0.113.9"

    def test_forwarded_for_falls_back_to_peer(self, make_context) -> None:
        assert forwarded_for_key(make_context(client="10.0.0.7")) == "10.0.0.7"

    def test_address_and_route(self, make_context) -> None:
        ctx = make_context("/api/v1/todos", method="POST", client="10.0.0.7")

        assert address_and_route_key(ctx) == "10.0.0.7|POST /api/v1/todos"


class TestAuthenticatedGiveBack:
    @pytest.mark.parametrize("status_code", [200, 404, 422, 500])
    def test_authenticated_requests_are_given_back(self, status_code: int) -> None:
        assert should_give_back(AUTH_ATTEMPT_POLICY, status_code, authenticated=True) is True

    def test_rejected_credentials_are_kept(self) -> None:
        assert should_give_back(AUTH_ATTEMPT_POLICY, 401, authenticated=False) is False

    def test_flag_is_off_by_default(self) -> None:
        assert should_give_back(DEFAULT_POLICY, 404, authenticated=True) is False
