"""Application descriptor collected by the form and rendered into Terraform."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from scoreforge.domain.errors import ValidationError

SERVICE_KEYS: tuple[str, ...] = ("database", "cache", "queue", "storage", "ai")
APPLICATION_TYPES: tuple[str, ...] = ("web", "api", "worker", "batch")
EXECUTION_TARGETS: tuple[str, ...] = ("eks", "ecs", "lambda")
_EXECUTION_ALIASES = {"aws": "eks"}

DEFAULT_REGIONS: tuple[str, ...] = (
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-west-2",
    "eu-central-1",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-northeast-1",
    "ap-northeast-2",
    "sa-east-1",
)

_NAME_PATTERN = re.compile(r"^[a-z](?:[a-z0-9-]{0,38}[a-z0-9])?$")


@dataclass(frozen=True, slots=True)
class TargetEnvironment:
    region: str
    type: str = "api"
    execution_environment: str = "eks"


@dataclass(frozen=True, slots=True)
class Descriptor:
    name: str
    environment: TargetEnvironment
    services: frozenset[str] = field(default_factory=frozenset)

    @property
    def region(self) -> str:
        return self.environment.region

    def with_region(self, region: str) -> "Descriptor":
        return replace(self, environment=replace(self.environment, region=region))

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "environment": {
                "type": self.environment.type,
                "executionEnvironment": self.environment.execution_environment,
                "region": self.environment.region,
            },
            "services": {key: True for key in SERVICE_KEYS if key in self.services},
        }


def default_descriptor(region: str) -> Descriptor:
    """Descriptor used by ``init`` when no descriptor was attached to the session."""
    return Descriptor(
        name="app",
        environment=TargetEnvironment(region=region),
        services=frozenset({"database"}),
    )


def validate_name(name: str) -> str:
    if not name:
        raise ValidationError("Application name is required")
    if not _NAME_PATTERN.match(name):
        raise ValidationError(
            "Application name must be 1-40 lowercase letters, digits or hyphens, "
            "starting with a letter and not ending with a hyphen"
        )
    return name


def validate_region(region: str | None, regions: tuple[str, ...] | list[str] = DEFAULT_REGIONS) -> str:
    if not region:
        raise ValidationError("AWS region is required")
    if region not in regions:
        raise ValidationError(f"Unsupported AWS region: {region}")
    return region


def _requested_services(raw: Any) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if isinstance(raw, Mapping):
        return frozenset(key for key in SERVICE_KEYS if raw.get(key))
    if isinstance(raw, (list, tuple)):
        # The form may also send service entries as [{"type": "database", ...}, "cache"].
        requested: set[str] = set()
        for item in raw:
            key = item.get("type") if isinstance(item, Mapping) else item
            if key in SERVICE_KEYS:
                requested.add(key)
        return frozenset(requested)
    raise ValidationError("services must be an object keyed by service type")


def parse_descriptor(payload: Any) -> Descriptor:
    """Build a :class:`Descriptor` from a decoded JSON body.

    Only the shape is checked here; name and region rules are enforced by the
    renderer so that rendering a hand-built descriptor is validated the same way.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid request body")
    environment = payload.get("environment") or {}
    if not isinstance(environment, Mapping):
        raise ValidationError("environment must be an object")

    app_type = str(environment.get("type") or "api")
    if app_type not in APPLICATION_TYPES:
        raise ValidationError(f"Unsupported application type: {app_type}")
    target = str(environment.get("executionEnvironment") or "eks")
    target = _EXECUTION_ALIASES.get(target, target)
    if target not in EXECUTION_TARGETS:
        raise ValidationError(f"Unsupported execution environment: {target}")

    name = payload.get("name")
    region = environment.get("region")
    return Descriptor(
        name=str(name).strip() if name is not None else "",
        environment=TargetEnvironment(
            region=str(region).strip() if region is not None else "",
            type=app_type,
            execution_environment=target,
        ),
        services=_requested_services(payload.get("services")),
    )
