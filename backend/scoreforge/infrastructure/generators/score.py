"""Score workload document generated alongside the Terraform configuration."""

from __future__ import annotations

import json
from typing import Any, Iterable

from scoreforge.domain.models.descriptor import (
    DEFAULT_REGIONS,
    SERVICE_KEYS,
    Descriptor,
    validate_name,
    validate_region,
)

SCORE_API_VERSION = "score.dev/v1b1"

_SERVICE_TYPES = {
    "database": "postgres",
    "cache": "redis",
    "queue": "sqs",
    "storage": "s3",
    "ai": "bedrock",
}


def build_score(descriptor: Descriptor) -> dict[str, Any]:
    services = {
        key: {"type": _SERVICE_TYPES[key], "properties": {"size": "small"}}
        for key in SERVICE_KEYS
        if key in descriptor.services
    }
    return {
        "apiVersion": SCORE_API_VERSION,
        "metadata": {"name": descriptor.name},
        "spec": {
            "environment": {
                "type": descriptor.environment.type,
                "executionEnvironment": descriptor.environment.execution_environment,
                "region": descriptor.region,
            },
            "services": services,
        },
    }


def render_score(descriptor: Descriptor, *, regions: Iterable[str] = DEFAULT_REGIONS) -> str:
    """Serialise the score document; JSON output is valid YAML, hence ``score.yaml``."""
    validate_name(descriptor.name)
    validate_region(descriptor.region, tuple(regions))
    return json.dumps(build_score(descriptor), indent=2) + "\n"
