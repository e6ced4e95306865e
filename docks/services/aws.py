"""
AWS: dock instances (EC2) and org Auto-Scaling groups.

The AWS APIs are public, so no tunnel is needed; listings are drained
with :func:`docks.pagination.fetch_all` and termination goes through the
dry-run gate.

Requires the ``boto3`` package: pip install docks[aws]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from docks.dry_run import DryRunGate, GateOutcome, OperationIntent
from docks.errors import InvalidArgumentError
from docks.pagination import boto_pages, fetch_all
from docks.secrets import VariablesFile

if TYPE_CHECKING:
    from docks.config import ResolvedConfig
    from docks.services.redis_ import RedisService

logger = logging.getLogger(__name__)


def tag_value(resource: dict[str, Any], key: str) -> str | None:
    """Return the value of tag *key* on an EC2/ASG resource, if present."""
    for tag in resource.get("Tags", []):
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def format_instance(instance: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": instance["InstanceId"],
        "ami": instance.get("ImageId"),
        "state": instance.get("State", {}).get("Name"),
        "type": instance.get("InstanceType"),
        "launched": instance.get("LaunchTime"),
        "ip": instance.get("PrivateIpAddress"),
        "org": tag_value(instance, "org"),
    }


def format_launch_configuration(lc: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": lc["LaunchConfigurationName"],
        "ami": lc.get("ImageId"),
        "type": lc.get("InstanceType"),
        "created": lc.get("CreatedTime"),
    }


def format_group(group: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": group["AutoScalingGroupName"],
        "org": tag_value(group, "org"),
        "env": tag_value(group, "env"),
        "launch_configuration": group.get("LaunchConfigurationName"),
        "min": group.get("MinSize"),
        "max": group.get("MaxSize"),
        "desired": group.get("DesiredCapacity"),
        "cooldown": group.get("DefaultCooldown"),
        "created": group.get("CreatedTime"),
    }


class AwsService:
    """
    EC2 and Auto Scaling operations for one environment.

    Args:
        config: Resolved configuration for the target environment.
        gate: DryRunGate used for termination.
        variables: Source of AWS credentials.
        session: Optional boto3 session (tests pass a stub).
    """

    def __init__(
        self,
        config: ResolvedConfig,
        gate: DryRunGate | None = None,
        variables: VariablesFile | None = None,
        session: Any = None,
    ) -> None:
        self.config = config
        self.gate = gate or DryRunGate()
        self.variables = variables or VariablesFile(config.inventory)
        self._session = session

    def _client(self, service: str, region: str) -> Any:
        if self._session is None:
            import boto3

            creds = self.variables.all(["aws_access_key_id", "aws_secret_access_key"])
            self._session = boto3.session.Session(
                aws_access_key_id=creds["aws_access_key_id"],
                aws_secret_access_key=creds["aws_secret_access_key"],
            )
        return self._session.client(service, region_name=region)

    def ec2(self) -> Any:
        return self._client("ec2", self.config.aws_region)

    def autoscaling(self) -> Any:
        return self._client("autoscaling", self.config.asg_region)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def list_instances(self, instance_id: str | None = None) -> list[dict[str, Any]]:
        """
        List dock instances for the environment.

        Args:
            instance_id: Optional instance id to narrow the query to.
        """
        filters = [
            {"Name": name, "Values": list(values)}
            for name, values in self.config.dock_filters.items()
        ]
        if instance_id:
            filters.append({"Name": "instance-id", "Values": [instance_id]})

        reservations = fetch_all(
            boto_pages(self.ec2().describe_instances, "Reservations", Filters=filters)
        )
        return [
            format_instance(instance)
            for reservation in reservations
            for instance in reservation.get("Instances", [])
        ]

    def terminate(
        self,
        instance_id: str,
        intent: OperationIntent,
        redis: RedisService | None = None,
    ) -> GateOutcome:
        """
        Terminate a dock instance.

        The dock is first removed from its org's weave network (when a
        RedisService is given), then terminated.

        Raises:
            InvalidArgumentError: If no single dock has that id.
        """
        instances = self.list_instances(instance_id)
        if len(instances) != 1:
            raise InvalidArgumentError(f"Dock with id {instance_id} not found")
        instance = instances[0]

        if redis is not None and instance["ip"] and instance["org"]:
            redis.remove_from_weave(instance["ip"], instance["org"], intent)

        ec2 = self.ec2()
        return self.gate.guard(
            intent,
            lambda: ec2.terminate_instances(InstanceIds=[instance_id]),
            f"Terminated dock instance {instance_id}",
        )

    # ------------------------------------------------------------------
    # Auto-Scaling groups
    # ------------------------------------------------------------------

    def list_auto_scaling_groups(self) -> list[dict[str, Any]]:
        """
        List org Auto-Scaling groups belonging to this environment.

        Only groups tagged with both ``org`` and ``env`` are returned, and
        only those whose env tag is ``production-<env>``.
        """
        groups = fetch_all(
            boto_pages(
                self.autoscaling().describe_auto_scaling_groups, "AutoScalingGroups"
            )
        )
        wanted_env = f"production-{self.config.env_name}"
        return [
            format_group(group)
            for group in groups
            if tag_value(group, "org") is not None
            and tag_value(group, "env") == wanted_env
        ]

    def find_group(self, org: str) -> dict[str, Any] | None:
        """Return this environment's Auto-Scaling group for *org*, if any."""
        org = str(org)
        return next(
            (group for group in self.list_auto_scaling_groups() if group["org"] == org),
            None,
        )

    def list_launch_configurations(self) -> list[dict[str, Any]]:
        """List launch configurations in the ASG region, oldest first."""
        configurations = fetch_all(
            boto_pages(
                self.autoscaling().describe_launch_configurations,
                "LaunchConfigurations",
            )
        )
        return sorted(
            (format_launch_configuration(lc) for lc in configurations),
            key=lambda lc: str(lc["created"] or ""),
        )
