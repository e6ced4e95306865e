"""
Org Auto-Scaling group jobs.

Group changes are never made against AWS directly. They are published
as jobs to rabbit (``asg.create``, ``asg.delete``, ``asg.update``) and
carried out by the fleet's own workers. Each job first checks the org's
group in the paginated ASG listing, then publishes through the dry-run
gate.
"""

from __future__ import annotations

from typing import Any

from docks.dry_run import GateOutcome, OperationIntent
from docks.errors import DocksError, InvalidArgumentError
from docks.services.aws import AwsService
from docks.services.rabbit import RabbitService

PROVISION_QUEUE = "cluster-instance-provision"


def scaled_capacity(group: dict[str, Any], number: int) -> dict[str, int]:
    """
    Return new Min/Desired/Max sizes for *group* changed by *number*.

    Positive numbers scale out, negative numbers scale in.

    Raises:
        DocksError: If the group would drop below zero instances.
    """
    data = {
        "MinSize": group["min"] + number,
        "DesiredCapacity": group["desired"] + number,
        "MaxSize": group["max"] + number,
    }
    if data["MinSize"] < 0 or data["DesiredCapacity"] < 0:
        raise DocksError("The group cannot be scaled-in further.")
    return data


class AutoScalingJobs:
    """Publishes Auto-Scaling group jobs for one environment."""

    def __init__(self, aws: AwsService, rabbit: RabbitService) -> None:
        self.aws = aws
        self.rabbit = rabbit

    def _existing_group(self, org: str) -> dict[str, Any]:
        group = self.aws.find_group(org)
        if group is None:
            raise DocksError(
                f"An Auto-Scaling Group for org {org} does not exist. "
                "Did you remember to pass an environment (`--env`)?"
            )
        return group

    def _update(
        self, org: str, data: dict[str, Any], intent: OperationIntent
    ) -> GateOutcome:
        return self.rabbit.publish(
            "asg.update", {"githubId": str(org), "data": data}, intent
        )

    def create(self, org: str, intent: OperationIntent) -> GateOutcome:
        if self.aws.find_group(org) is not None:
            raise DocksError(f"An Auto-Scaling Group for org {org} already exists.")
        return self.rabbit.publish("asg.create", {"githubId": str(org)}, intent)

    def delete(self, org: str, intent: OperationIntent) -> GateOutcome:
        self._existing_group(org)
        return self.rabbit.publish("asg.delete", {"githubId": str(org)}, intent)

    def off(self, org: str, intent: OperationIntent) -> GateOutcome:
        """Scale the group to zero instances without deleting it."""
        self._existing_group(org)
        return self._update(org, {"MinSize": 0, "DesiredCapacity": 0}, intent)

    def set_launch_configuration(
        self, org: str, name: str, intent: OperationIntent
    ) -> GateOutcome:
        self._existing_group(org)
        return self._update(org, {"LaunchConfigurationName": name}, intent)

    def scale_out(self, org: str, number: int, intent: OperationIntent) -> GateOutcome:
        if number <= 0:
            raise InvalidArgumentError("Scale out number must be greater than 0")
        group = self._existing_group(org)
        return self._update(org, scaled_capacity(group, number), intent)

    def scale_in(self, org: str, number: int, intent: OperationIntent) -> GateOutcome:
        if number <= 0:
            raise InvalidArgumentError("Scale in number must be greater than 0")
        group = self._existing_group(org)
        return self._update(org, scaled_capacity(group, -number), intent)


def provision(
    rabbit: RabbitService, org: str, intent: OperationIntent
) -> GateOutcome:
    """Enqueue provisioning of a new dock instance for *org*."""
    return rabbit.publish(PROVISION_QUEUE, {"githubId": str(org)}, intent)
