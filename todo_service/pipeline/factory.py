"""Build the admission pipeline from settings.

Stage order is fixed: cors → logging → rate limits → auth. Values left unset
in the settings fall back to the preset of the current environment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from todo_service.adapters.rate_limit.base import AbstractCounterStore
from todo_service.adapters.rate_limit.in_memory import InMemoryCounterStore
from todo_service.core.auth import parse_tokens
from todo_service.core.config import Settings, settings, split_csv
from todo_service.pipeline.orchestrator import Pipeline, Stage
from todo_service.pipeline.rate_limit import (
    AUTH_ATTEMPT_POLICY,
    DEFAULT_POLICY,
    STRICT_POLICY,
    RateLimitPolicy,
    RateLimitStage,
)
from todo_service.pipeline.routes import RouteScope
from todo_service.pipeline.stages import BearerAuthStage, CorsOptions, CorsStage, RequestLoggingStage

logger = logging.getLogger(__name__)

StoreFactory = Callable[[RateLimitPolicy], AbstractCounterStore]


@dataclass(frozen=True)
class EnvironmentPreset:
    """Defaults applied per APP_ENV when a setting is left unset."""

    auth_enabled: bool
    allow_origins: tuple[str, ...]
    max_requests: int


DEVELOPMENT_PRESET = EnvironmentPreset(
    auth_enabled=False,
    allow_origins=("*",),
    max_requests=1000,
)

PRODUCTION_PRESET = EnvironmentPreset(
    auth_enabled=True,
    allow_origins=("https://yourdomain.com",),
    max_requests=100,
)

ENVIRONMENT_PRESETS: dict[str, EnvironmentPreset] = {
    "development": DEVELOPMENT_PRESET,
    "testing": DEVELOPMENT_PRESET,
    "staging": PRODUCTION_PRESET,
    "production": PRODUCTION_PRESET,
}


def preset_for(app_env: str) -> EnvironmentPreset:
    return ENVIRONMENT_PRESETS.get(app_env.lower(), DEVELOPMENT_PRESET)


def _default_store(policy: RateLimitPolicy) -> AbstractCounterStore:
    return InMemoryCounterStore(window_ms=policy.window_ms)


def build_pipeline(cfg: Settings | None = None, *, store_factory: StoreFactory | None = None) -> Pipeline:
    """Assemble the pipeline for the configured environment.

    Args:
        cfg: Settings; defaults to the global settings.
        store_factory: Creates the counter store of each rate limit policy.

    Returns:
        Pipeline ready to be installed as HTTP middleware.

    Raises:
        ConfigurationAppError: If a stage or policy is misconfigured.
    """
    cfg = cfg or settings
    make_store = store_factory or _default_store
    preset = preset_for(cfg.app_env)
    rl = cfg.rate_limit

    stages: list[Stage] = []

    if cfg.cors.enabled:
        cors = CorsStage(
            CorsOptions(
                allow_origins=split_csv(cfg.cors.allow_origins) or preset.allow_origins,
                allow_credentials=cfg.cors.allow_credentials,
                allow_methods=split_csv(cfg.cors.allow_methods),
                allow_headers=split_csv(cfg.cors.allow_headers),
                expose_headers=split_csv(cfg.cors.expose_headers),
                max_age=cfg.cors.max_age,
            )
        )
        stages.append(Stage(name=cors.name, handler=cors))

    request_logging = RequestLoggingStage(slow_request_ms=cfg.log.slow_request_ms)
    stages.append(Stage(name=request_logging.name, handler=request_logging))

    if rl.enabled:
        policy = replace(
            DEFAULT_POLICY,
            window_ms=rl.window_ms,
            max_requests=rl.max_requests if rl.max_requests is not None else preset.max_requests,
            standard_headers=rl.standard_headers,
            legacy_headers=rl.legacy_headers,
            scope=RouteScope(skip_routes=split_csv(rl.skip_routes)),
        )
        stages.append(RateLimitStage(policy, make_store(policy)).as_stage())

    if rl.strict_enabled:
        policy = replace(
            STRICT_POLICY,
            standard_headers=rl.standard_headers,
            legacy_headers=rl.legacy_headers,
            scope=RouteScope(only_routes=split_csv(rl.strict_routes)),
        )
        stages.append(RateLimitStage(policy, make_store(policy)).as_stage())

    auth_enabled = cfg.auth.enabled if cfg.auth.enabled is not None else preset.auth_enabled
    if auth_enabled:
        auth_scope = RouteScope(skip_routes=split_csv(cfg.auth.skip_routes))
        # Counts rejected credentials only; headers stay with the global quota.
        attempts = replace(AUTH_ATTEMPT_POLICY, scope=auth_scope, standard_headers=False)
        stages.append(RateLimitStage(attempts, make_store(attempts)).as_stage())

        auth = BearerAuthStage(parse_tokens(cfg.auth.tokens))
        stages.append(Stage(name=auth.name, handler=auth, scope=auth_scope))

    pipeline = Pipeline(stages)
    logger.info(
        "pipeline.built",
        extra={"app_env": cfg.app_env, "stages": pipeline.stage_names},
    )
    return pipeline
