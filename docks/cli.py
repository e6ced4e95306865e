"""
docks CLI: inspect and mutate the dock fleet.

Provides commands for:
- list / remove: docks in rotation (mavis)
- kill / unhealthy / khronos: jobs and events published to rabbit
- aws / asg / terminate: EC2 instances and Auto-Scaling groups
- provision: new dock instances for an org
- weave: org weave networks (redis)
- containers / ghost: containers known to mongo and swarm
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import Callable

from rich.prompt import Confirm, IntPrompt

from docks import console
from docks.config import ProjectConfig, ResolvedConfig
from docks.dry_run import GateOutcome, OperationIntent
from docks.errors import AbortedError, DocksError


def _add_env(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--env", "-e",
        help="Environment to operate on (default: project default_env)",
    )


def _add_dry(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dry", "-d",
        action="store_true",
        help="Dry run (report what would happen, change nothing)",
    )


def _add_yes(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Skip confirmation prompts",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docks",
        description="Inspect and mutate the dock fleet",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    list_parser = subparsers.add_parser("list", help="List docks in rotation")
    _add_env(list_parser)
    list_parser.add_argument("--org", "-o", help="Filter by organization id prefix")

    # remove
    remove_parser = subparsers.add_parser(
        "remove", help="Remove a dock from rotation (does not terminate it)"
    )
    remove_parser.add_argument("ip", help="Private IP of the dock")
    _add_env(remove_parser)
    _add_dry(remove_parser)

    # kill
    kill_parser = subparsers.add_parser(
        "kill", help="Terminate a dock and remove it from rotation"
    )
    kill_parser.add_argument("ip", help="Private IP of the dock")
    _add_env(kill_parser)
    _add_dry(kill_parser)
    _add_yes(kill_parser)

    # unhealthy
    unhealthy_parser = subparsers.add_parser(
        "unhealthy", help="Mark a dock as unhealthy so it gets replaced"
    )
    unhealthy_parser.add_argument("ip", help="Private IP of the dock")
    unhealthy_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Publish even if the dock is not known to swarm",
    )
    _add_env(unhealthy_parser)
    _add_dry(unhealthy_parser)
    _add_yes(unhealthy_parser)

    # khronos
    khronos_parser = subparsers.add_parser(
        "khronos", help="Enqueue a khronos maintenance task"
    )
    khronos_parser.add_argument(
        "--list", "-l",
        action="store_true",
        dest="list_tasks",
        help="List available tasks and exit",
    )
    _add_env(khronos_parser)
    _add_dry(khronos_parser)

    # aws
    aws_parser = subparsers.add_parser("aws", help="List dock instances in EC2")
    aws_parser.add_argument("--id", dest="instance_id", help="Instance id to look up")
    _add_env(aws_parser)

    # asg
    asg_parser = subparsers.add_parser(
        "asg", help="List and change org Auto-Scaling groups"
    )
    asg_actions = asg_parser.add_subparsers(
        dest="asg_action", help="Auto-Scaling group actions (default: list)"
    )
    _add_env(asg_actions.add_parser("list", help="List org Auto-Scaling groups"))
    _add_env(
        asg_actions.add_parser("launch-configs", help="List launch configurations")
    )
    for action, help_text in [
        ("create", "Create an Auto-Scaling group for an org"),
        ("delete", "Delete an org's Auto-Scaling group"),
        ("off", "Scale an org's group down to zero instances"),
        ("lc", "Change the launch configuration of an org's group"),
        ("scale-out", "Add instances to an org's group"),
        ("scale-in", "Remove instances from an org's group"),
    ]:
        action_parser = asg_actions.add_parser(action, help=help_text)
        action_parser.add_argument("org", help="Organization id")
        if action == "lc":
            action_parser.add_argument("lc", help="Launch configuration name")
        elif action.startswith("scale-"):
            action_parser.add_argument(
                "number", type=int, nargs="?", default=1,
                help="Number of instances (default: 1)",
            )
        _add_env(action_parser)
        _add_dry(action_parser)
        _add_yes(action_parser)

    # provision
    provision_parser = subparsers.add_parser(
        "provision", help="Provision a new dock instance for an org"
    )
    provision_parser.add_argument("org", help="Organization id")
    _add_env(provision_parser)
    _add_dry(provision_parser)
    _add_yes(provision_parser)

    # terminate
    terminate_parser = subparsers.add_parser(
        "terminate", help="Terminate a dock instance in EC2"
    )
    terminate_parser.add_argument("instance_id", help="EC2 instance id")
    _add_env(terminate_parser)
    _add_dry(terminate_parser)
    _add_yes(terminate_parser)

    # weave
    weave_parser = subparsers.add_parser("weave", help="Show an org's weave network")
    weave_parser.add_argument("org", help="Organization id")
    weave_parser.add_argument(
        "--remove",
        metavar="IP",
        help="Remove the dock with this IP from the weave network",
    )
    _add_env(weave_parser)
    _add_dry(weave_parser)

    # containers
    containers_parser = subparsers.add_parser(
        "containers", help="List containers recorded in mongo"
    )
    containers_parser.add_argument("--org", "-o", help="Filter by organization id")
    _add_env(containers_parser)

    # ghost
    ghost_parser = subparsers.add_parser(
        "ghost", help="List swarm containers that mongo does not know about"
    )
    ghost_parser.add_argument("--org", "-o", help="Filter by organization id")
    _add_env(ghost_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    console.configure_logging(args.verbose)

    handler = HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        config = ProjectConfig.load().resolve(getattr(args, "env", None))
        return handler(args, config)
    except DocksError as exc:
        console.render_error(exc)
        return 1
    except KeyboardInterrupt:
        console.render_error(AbortedError("Interrupted"))
        return 130


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def confirm(message: str, abort_message: str, args: argparse.Namespace) -> None:
    """
    Ask a yes/no question unless --yes was given.

    Dry runs still ask, so the operator sees the same prompts a real
    run would show.

    Raises:
        AbortedError: If the operator answers no.
    """
    if getattr(args, "yes", False):
        return
    if not Confirm.ask(message, console=console.console, default=False):
        raise AbortedError(abort_message)


def report(outcome: GateOutcome) -> None:
    if outcome.performed:
        console.success(outcome.description)
    else:
        console.console.print(f"[yellow]✓[/yellow] {outcome}")


def _elapsed(start: float) -> str:
    return f"Query complete in {time.monotonic() - start:.1f}s"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_list(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.mavis import MavisService

    start = time.monotonic()
    mavis = MavisService(config)
    with console.status(f"Fetching {config.env_name} docks from {mavis.base_url}"):
        docks = mavis.list_docks(org=args.org)
    console.out.print(
        console.render_table(
            ["Org", "IP", "Builds", "Containers", "Full Host"],
            [
                (d["org"], d["ip"], d["builds"], d["containers"], d["host"])
                for d in docks
            ],
        )
    )
    console.success(_elapsed(start))
    return 0


def handle_remove(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.mavis import MavisService

    mavis = MavisService(config)
    with console.status(f"Removing {config.env_name} dock {args.ip} from rotation"):
        outcome = mavis.remove(args.ip, OperationIntent.mutate(args.dry))
    report(outcome)
    return 0


def handle_kill(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.rabbit import RabbitService

    abort = "Aborted dock destruction"
    confirm(
        f"This will KILL the dock. Are you SURE you want to kill the dock with ip {args.ip}?",
        abort,
        args,
    )
    confirm(f"Are you sure you wish to kill the dock with ip {args.ip}?", abort, args)

    rabbit = RabbitService(config)
    with console.status(f"Enqueuing {config.env_name} job into asg.instance.terminate"):
        outcome = rabbit.publish(
            "asg.instance.terminate",
            {"ipAddress": args.ip},
            OperationIntent.mutate(args.dry),
        )
    report(outcome)
    return 0


def handle_unhealthy(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.rabbit import RabbitService
    from docks.services.swarm import SwarmService

    with console.status(f"Fetching {config.env_name} docks from swarm"):
        docks = SwarmService(config).list_docks()
    dock = next((d for d in docks if d["ip"] == args.ip), None)
    if dock is None and not args.force:
        raise DocksError(f"Dock with host ip {args.ip} not found.")
    org = str(dock["org"]) if dock is not None and dock["org"] else "unknown"

    confirm(
        f"Are you sure you wish to mark {args.ip} as unhealthy for org {org}?",
        "Aborted dock unhealthy",
        args,
    )
    job = {"host": f"http://{args.ip}:4242", "githubOrgId": org}
    with console.status("Publishing dock.lost"):
        outcome = RabbitService(config).publish_event(
            "dock.lost", job, OperationIntent.mutate(args.dry)
        )
    report(outcome)
    return 0


def handle_khronos(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.rabbit import KHRONOS_TASKS, RabbitService

    tasks = list(KHRONOS_TASKS)
    if args.list_tasks:
        console.out.print("[green]Available Tasks:[/green]")
        for task in tasks:
            console.out.print(task)
        return 0

    for number, task in enumerate(tasks, start=1):
        console.console.print(f"  {number}) {task}")
    answer = IntPrompt.ask(
        "What task would you like to accomplish?",
        console=console.console,
        choices=[str(n) for n in range(1, len(tasks) + 1)],
    )
    queue = KHRONOS_TASKS[tasks[answer - 1]]
    with console.status(f"Enqueuing {config.env_name} job into {queue}"):
        outcome = RabbitService(config).publish(
            queue, {}, OperationIntent.mutate(args.dry)
        )
    report(outcome)
    return 0


def handle_aws(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.aws import AwsService

    start = time.monotonic()
    with console.status(f"Fetching {config.env_name} docks from AWS"):
        instances = AwsService(config).list_instances(args.instance_id)
    console.out.print(
        console.render_table(
            ["Id", "Org", "IP", "State", "Type", "AMI", "Launched"],
            [
                (i["id"], i["org"], i["ip"], i["state"], i["type"], i["ami"], i["launched"])
                for i in instances
            ],
        )
    )
    console.success(_elapsed(start))
    return 0


_ASG_VERBS = {
    "create": "create",
    "delete": "DELETE",
    "off": "turn off",
    "lc": "change the launch configuration of",
    "scale-out": "scale out",
    "scale-in": "scale in",
}


def handle_asg(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.asg import AutoScalingJobs
    from docks.services.aws import AwsService
    from docks.services.rabbit import RabbitService

    action = args.asg_action or "list"
    aws = AwsService(config)
    start = time.monotonic()

    if action == "list":
        with console.status(f"Fetching {config.env_name} Auto-Scaling Groups from AWS"):
            groups = aws.list_auto_scaling_groups()
        console.out.print(
            console.render_table(
                ["Org", "Name", "Launch Configuration", "Min", "Max", "Desired"],
                [
                    (g["org"], g["name"], g["launch_configuration"], g["min"], g["max"], g["desired"])
                    for g in sorted(groups, key=lambda g: g["org"] or "")
                ],
            )
        )
        console.success(_elapsed(start))
        return 0

    if action == "launch-configs":
        with console.status(f"Fetching {config.env_name} launch configurations from AWS"):
            configurations = aws.list_launch_configurations()
        console.out.print(
            console.render_table(
                ["Name", "AMI", "Type", "Created"],
                [(c["name"], c["ami"], c["type"], c["created"]) for c in configurations],
            )
        )
        console.success(_elapsed(start))
        return 0

    confirm(
        f"Are you sure you wish to {_ASG_VERBS[action]} the {config.env_name} "
        f"Auto-Scaling Group for org {args.org}?",
        "Aborted Auto-Scaling Group change",
        args,
    )
    jobs = AutoScalingJobs(aws, RabbitService(config))
    intent = OperationIntent.mutate(args.dry)
    with console.status(f"Checking {config.env_name} Auto-Scaling Group for org {args.org}"):
        if action == "create":
            outcome = jobs.create(args.org, intent)
        elif action == "delete":
            outcome = jobs.delete(args.org, intent)
        elif action == "off":
            outcome = jobs.off(args.org, intent)
        elif action == "lc":
            outcome = jobs.set_launch_configuration(args.org, args.lc, intent)
        elif action == "scale-out":
            outcome = jobs.scale_out(args.org, args.number, intent)
        else:
            outcome = jobs.scale_in(args.org, args.number, intent)
    report(outcome)
    return 0


def handle_provision(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.asg import provision
    from docks.services.rabbit import RabbitService

    confirm(
        f"Are you sure you wish to provision a new {config.env_name} dock "
        f"for org {args.org}?",
        "Aborted instance provisioning",
        args,
    )
    with console.status("Enqueuing job into cluster-instance-provision"):
        outcome = provision(
            RabbitService(config), args.org, OperationIntent.mutate(args.dry)
        )
    report(outcome)
    return 0


def handle_terminate(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.aws import AwsService
    from docks.services.redis_ import RedisService

    confirm(
        f"Are you sure you wish to terminate dock instance {args.instance_id}?",
        "Aborted dock termination",
        args,
    )
    with console.status(f"Terminating dock instance {args.instance_id}"):
        outcome = AwsService(config).terminate(
            args.instance_id,
            OperationIntent.mutate(args.dry),
            redis=RedisService(config),
        )
    report(outcome)
    return 0


def handle_weave(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.redis_ import RedisService

    redis = RedisService(config)
    if args.remove:
        with console.status(f"Removing dock {args.remove} from weave network"):
            outcome = redis.remove_from_weave(
                args.remove, args.org, OperationIntent.mutate(args.dry)
            )
        report(outcome)
        return 0

    with console.status(f"Fetching weave network for org {args.org}"):
        peers = redis.weave_peers(args.org)
    console.out.print(console.render_table(["Weave Peer"], [(p,) for p in peers]))
    return 0


def handle_containers(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.mongo import MongoService

    start = time.monotonic()
    with console.status(f"Fetching {config.env_name} containers from mongo"):
        records = MongoService(config).containers(org=args.org)
    console.out.print(
        console.render_table(
            ["Instance", "Owner", "Container"],
            [
                (
                    r.get("name"),
                    r.get("owner", {}).get("github"),
                    r.get("container", {}).get("dockerContainer"),
                )
                for r in records
            ],
        )
    )
    console.success(_elapsed(start))
    return 0


def handle_ghost(args: argparse.Namespace, config: ResolvedConfig) -> int:
    from docks.services.mongo import MongoService
    from docks.services.swarm import SwarmService

    start = time.monotonic()
    with console.status(f"Fetching {config.env_name} containers"):
        swarm_containers = SwarmService(config).containers(org=args.org)
        known = {
            r.get("container", {}).get("dockerContainer")
            for r in MongoService(config).containers(org=args.org)
        }
    ghosts = sorted(
        (c for c in swarm_containers if c["id"] not in known),
        key=lambda c: c["owner_username"],
    )
    console.out.print(
        console.render_table(
            ["Container Id", "Owner Username", "Dock IP", "Org Id", "Status"],
            [
                (c["id"], c["owner_username"], c["dock_ip"], c["org_id"], c["status"])
                for c in ghosts
            ],
        )
    )
    total = len(swarm_containers)
    percent = (len(ghosts) / total * 100) if total else 0.0
    console.out.print(f"{len(ghosts)} of {total} containers are ghosts ({percent:.2f}%)")
    console.success(_elapsed(start))
    return 0


HANDLERS: dict[str | None, Callable[[argparse.Namespace, ResolvedConfig], int]] = {
    "list": handle_list,
    "remove": handle_remove,
    "kill": handle_kill,
    "unhealthy": handle_unhealthy,
    "khronos": handle_khronos,
    "aws": handle_aws,
    "asg": handle_asg,
    "provision": handle_provision,
    "terminate": handle_terminate,
    "weave": handle_weave,
    "containers": handle_containers,
    "ghost": handle_ghost,
}


if __name__ == "__main__":
    sys.exit(main())
