from __future__ import annotations

import json
import re

import pytest

from scoreforge.domain.errors import ValidationError
from scoreforge.domain.models.descriptor import Descriptor, TargetEnvironment, parse_descriptor
from scoreforge.infrastructure.generators import build_score, fragment_names, render, render_score


def _descriptor(name="orders", region="eu-west-1", services=("database",), target="eks") -> Descriptor:
    return Descriptor(
        name=name,
        environment=TargetEnvironment(region=region, execution_environment=target),
        services=frozenset(services),
    )


def test_orders_with_database_only():
    config = render(_descriptor())

    assert 'region = "eu-west-1"' in config
    assert 'resource "aws_db_instance" "main"' in config
    assert re.search(r'db_name\s+= "orders"', config)
    assert "aws_elasticache_cluster" not in config
    assert "aws_sqs_queue" not in config
    assert 'module "eks"' in config


def test_rendering_is_idempotent():
    descriptor = _descriptor(services=("database", "cache", "queue", "storage", "ai"))

    assert render(descriptor) == render(descriptor)


def test_service_fragments_follow_fixed_order():
    descriptor = _descriptor(services=("ai", "database", "queue"))

    assert fragment_names(descriptor) == [
        "header",
        "network",
        "compute:eks",
        "service:database",
        "service:queue",
        "service:ai",
    ]
    config = render(descriptor)
    assert config.index("aws_db_instance") < config.index("aws_sqs_queue") < config.index("bedrock")


def test_compute_fragment_follows_execution_target():
    config = render(_descriptor(target="ecs", services=()))

    assert 'resource "aws_ecs_cluster" "main"' in config
    assert 'module "eks"' not in config


def test_hyphenated_names_yield_valid_database_identifiers():
    config = render(_descriptor(name="order-service"))

    assert re.search(r'identifier\s+= "order-service-db"', config)
    assert re.search(r'db_name\s+= "order_service"', config)


@pytest.mark.parametrize(
    "name, message",
    [
        ("", "Application name is required"),
        ("Orders", "Application name must be"),
        ("orders-", "Application name must be"),
        ('x"; evil', "Application name must be"),
    ],
)
def test_invalid_names_are_rejected(name, message):
    with pytest.raises(ValidationError, match=message):
        render(_descriptor(name=name))


def test_missing_region_is_rejected():
    with pytest.raises(ValidationError, match="AWS region is required"):
        render(_descriptor(region=""))


def test_region_must_be_allow_listed():
    with pytest.raises(ValidationError, match="Unsupported AWS region"):
        render(_descriptor(region="eu-west-1"), regions=("us-east-1",))


def test_score_document_lists_requested_services():
    document = json.loads(render_score(_descriptor(services=("database", "queue"))))

    assert document["apiVersion"] == "score.dev/v1b1"
    assert document["metadata"] == {"name": "orders"}
    assert document["spec"]["environment"]["region"] == "eu-west-1"
    assert document["spec"]["services"] == {
        "database": {"type": "postgres", "properties": {"size": "small"}},
        "queue": {"type": "sqs", "properties": {"size": "small"}},
    }


def test_score_matches_builder():
    descriptor = _descriptor()

    assert json.loads(render_score(descriptor)) == build_score(descriptor)


def test_parse_descriptor_accepts_form_payload():
    descriptor = parse_descriptor(
        {
            "name": " orders ",
            "environment": {"region": "eu-west-1", "type": "web", "executionEnvironment": "aws"},
            "services": {"database": True, "cache": False, "unknown": True},
        }
    )

    assert descriptor.name == "orders"
    assert descriptor.environment.type == "web"
    assert descriptor.environment.execution_environment == "eks"
    assert descriptor.services == frozenset({"database"})


def test_parse_descriptor_accepts_service_list():
    descriptor = parse_descriptor(
        {"name": "orders", "environment": {"region": "eu-west-1"}, "services": [{"type": "cache"}, "ai"]}
    )

    assert descriptor.services == frozenset({"cache", "ai"})


@pytest.mark.parametrize(
    "payload, message",
    [
        ([], "Invalid request body"),
        ({"name": "orders", "environment": "eu-west-1"}, "environment must be an object"),
        ({"name": "orders", "environment": {"type": "desktop"}}, "Unsupported application type"),
        (
            {"name": "orders", "environment": {"executionEnvironment": "gke"}},
            "Unsupported execution environment",
        ),
        ({"name": "orders", "services": "database"}, "services must be an object"),
    ],
)
def test_parse_descriptor_rejects_malformed_payloads(payload, message):
    with pytest.raises(ValidationError, match=message):
        parse_descriptor(payload)
