"""
Backing-service integrations.

- RabbitService: publish jobs/events (tunneled)
- MongoService: instance/container records (tunneled)
- RedisService: weave peer sets (tunneled)
- SwarmService: docks and containers from the swarm manager (port-forward)
- MavisService: docks in rotation (HTTP)
- AwsService: EC2 instances, Auto-Scaling groups and launch configurations (boto3)
- AutoScalingJobs: org Auto-Scaling group changes published as rabbit jobs

Each module imports its client library lazily, so ``import docks.services``
works without any of the optional extras installed.
"""

from __future__ import annotations

from docks.services.asg import AutoScalingJobs
from docks.services.aws import AwsService
from docks.services.base import TunneledService
from docks.services.mavis import MavisService
from docks.services.mongo import MongoService
from docks.services.rabbit import RabbitService
from docks.services.redis_ import RedisService
from docks.services.swarm import SwarmService

__all__ = [
    "AutoScalingJobs",
    "AwsService",
    "MavisService",
    "MongoService",
    "RabbitService",
    "RedisService",
    "SwarmService",
    "TunneledService",
]
