"""Render an application descriptor into a Terraform (HCL) configuration.

The configuration is assembled from a fixed set of named fragments: the
provider header, the network, one compute fragment selected by execution
target, and one fragment per requested service in :data:`SERVICE_ORDER`.
Only the descriptor's name, region and derived identifiers are interpolated,
so rendering the same descriptor always yields byte-identical text.
"""

from __future__ import annotations

from string import Template
from typing import Iterable, Mapping

from scoreforge.domain.models.descriptor import (
    DEFAULT_REGIONS,
    SERVICE_KEYS,
    Descriptor,
    validate_name,
    validate_region,
)

SERVICE_ORDER: tuple[str, ...] = SERVICE_KEYS


class _HclTemplate(Template):
    # HCL already uses "${...}" for its own interpolation.
    delimiter = "@"


HEADER = _HclTemplate(
    """terraform {
  required_providers {
    aws = {
      source  = "hashicorp/aws"
      version = "~> 5.0"
    }
  }
}

provider "aws" {
  region = "@region"

  default_tags {
    tags = {
      Application = "@name"
      Environment = "@app_type"
      ManagedBy   = "scoreforge"
    }
  }
}
"""
)

NETWORK = _HclTemplate(
    """module "vpc" {
  source  = "terraform-aws-modules/vpc/aws"
  version = "~> 5.0"

  name = "@name-vpc"
  cidr = "10.0.0.0/16"

  azs             = ["@{region}a", "@{region}b", "@{region}c"]
  private_subnets = ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"]
  public_subnets  = ["10.0.101.0/24", "10.0.102.0/24", "10.0.103.0/24"]

  enable_nat_gateway = true
  single_nat_gateway = true
}

output "vpc_id" {
  value = module.vpc.vpc_id
}

output "subnet_ids" {
  value = module.vpc.private_subnets
}
"""
)

COMPUTE: Mapping[str, Template] = {
    "eks": _HclTemplate(
        """module "eks" {
  source  = "terraform-aws-modules/eks/aws"
  version = "~> 19.0"

  cluster_name    = "@name-cluster"
  cluster_version = "1.27"

  cluster_endpoint_public_access = true

  vpc_id                   = module.vpc.vpc_id
  subnet_ids               = module.vpc.private_subnets
  control_plane_subnet_ids = module.vpc.private_subnets

  eks_managed_node_groups = {
    default = {
      min_size     = 1
      max_size     = 3
      desired_size = 2

      instance_types = ["t3.medium"]
    }
  }

  enable_irsa = true
}

output "cluster_endpoint" {
  value = module.eks.cluster_endpoint
}
"""
    ),
    "ecs": _HclTemplate(
        """resource "aws_ecs_cluster" "main" {
  name = "@name-cluster"

  setting {
    name  = "containerInsights"
    value = "enabled"
  }
}

output "cluster_arn" {
  value = aws_ecs_cluster.main.arn
}
"""
    ),
    "lambda": _HclTemplate(
        """resource "aws_iam_role" "lambda" {
  name = "@name-lambda-exec"

  assume_role_policy = jsonencode({
    Version = "2012-10-17"
    Statement = [
      {
        Effect    = "Allow"
        Action    = "sts:AssumeRole"
        Principal = { Service = "lambda.amazonaws.com" }
      }
    ]
  })
}

resource "aws_iam_role_policy_attachment" "lambda_vpc" {
  role       = aws_iam_role.lambda.name
  policy_arn = "arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole"
}

output "lambda_role_arn" {
  value = aws_iam_role.lambda.arn
}
"""
    ),
}

SERVICES: Mapping[str, Template] = {
    "database": _HclTemplate(
        """resource "aws_db_subnet_group" "main" {
  name       = "@name-db-subnet-group"
  subnet_ids = module.vpc.private_subnets
}

resource "aws_security_group" "rds" {
  name        = "@name-rds-sg"
  description = "Security group for the @name database"
  vpc_id      = module.vpc.vpc_id

  ingress {
    from_port   = 5432
    to_port     = 5432
    protocol    = "tcp"
    cidr_blocks = [module.vpc.vpc_cidr_block]
  }

  egress {
    from_port   = 0
    to_port     = 0
    protocol    = "-1"
    cidr_blocks = ["0.0.0.0/0"]
  }
}

resource "aws_db_instance" "main" {
  identifier          = "@name-db"
  allocated_storage   = 20
  storage_type        = "gp2"
  engine              = "postgres"
  engine_version      = "14"
  instance_class      = "db.t3.micro"
  db_name             = "@db_name"
  username            = "postgres"
  skip_final_snapshot = true

  manage_master_user_password = true

  vpc_security_group_ids = [aws_security_group.rds.id]
  db_subnet_group_name   = aws_db_subnet_group.main.name
}

output "database_endpoint" {
  value = aws_db_instance.main.address
}
"""
    ),
    "cache": _HclTemplate(
        """resource "aws_elasticache_subnet_group" "main" {
  name       = "@name-cache-subnet-group"
  subnet_ids = module.vpc.private_subnets
}

resource "aws_elasticache_cluster" "main" {
  cluster_id           = "@name-cache"
  engine               = "redis"
  node_type            = "cache.t3.micro"
  num_cache_nodes      = 1
  parameter_group_name = "default.redis7"
  port                 = 6379
  subnet_group_name    = aws_elasticache_subnet_group.main.name
}

output "cache_endpoint" {
  value = aws_elasticache_cluster.main.cache_nodes[0].address
}
"""
    ),
    "queue": _HclTemplate(
        """resource "aws_sqs_queue" "dead_letter" {
  name = "@name-queue-dlq"
}

resource "aws_sqs_queue" "main" {
  name                       = "@name-queue"
  visibility_timeout_seconds = 60

  redrive_policy = jsonencode({
    deadLetterTargetArn = aws_sqs_queue.dead_letter.arn
    maxReceiveCount     = 5
  })
}

output "queue_url" {
  value = aws_sqs_queue.main.url
}
"""
    ),
    "storage": _HclTemplate(
        """resource "aws_s3_bucket" "assets" {
  bucket_prefix = "@name-assets-"
  force_destroy = true
}

resource "aws_s3_bucket_public_access_block" "assets" {
  bucket = aws_s3_bucket.assets.id

  block_public_acls       = true
  block_public_policy     = true
  ignore_public_acls      = true
  restrict_public_buckets = true
}

output "storage_bucket" {
  value = aws_s3_bucket.assets.bucket
}
"""
    ),
    "ai": _HclTemplate(
        """resource "aws_iam_policy" "bedrock_invoke" {
  name        = "@name-bedrock-invoke"
  description = "Allows @name to invoke Amazon Bedrock models"

  policy = jsonencode({
    Version = "2012-10-17"
    Statement = [
      {
        Effect   = "Allow"
        Action   = ["bedrock:InvokeModel", "bedrock:InvokeModelWithResponseStream"]
        Resource = "arn:aws:bedrock:@region::foundation-model/*"
      }
    ]
  })
}

output "bedrock_policy_arn" {
  value = aws_iam_policy.bedrock_invoke.arn
}
"""
    ),
}


def _hcl_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "$${")


def _context(descriptor: Descriptor) -> dict[str, str]:
    name = _hcl_escape(descriptor.name)
    return {
        "name": name,
        "region": _hcl_escape(descriptor.region),
        "app_type": _hcl_escape(descriptor.environment.type),
        "db_name": name.replace("-", "_"),
    }


def fragment_names(descriptor: Descriptor) -> list[str]:
    """Names of the fragments :func:`render` composes, in output order."""
    names = ["header", "network", f"compute:{descriptor.environment.execution_environment}"]
    names.extend(f"service:{key}" for key in SERVICE_ORDER if key in descriptor.services)
    return names


def _fragments(descriptor: Descriptor) -> Iterable[Template]:
    yield HEADER
    yield NETWORK
    yield COMPUTE[descriptor.environment.execution_environment]
    for key in SERVICE_ORDER:
        if key in descriptor.services:
            yield SERVICES[key]


def render(descriptor: Descriptor, *, regions: Iterable[str] = DEFAULT_REGIONS) -> str:
    """Return the Terraform configuration for ``descriptor``.

    Raises :class:`~scoreforge.domain.errors.ValidationError` when the name is
    empty or unsafe, or the region is missing or outside ``regions``.
    """
    validate_name(descriptor.name)
    validate_region(descriptor.region, tuple(regions))
    context = _context(descriptor)
    return "\n".join(fragment.substitute(context) for fragment in _fragments(descriptor))
