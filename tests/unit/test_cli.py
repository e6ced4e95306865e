"""Tests for docks.cli."""

from __future__ import annotations

import argparse
import logging
from unittest.mock import patch

import pytest

from docks import cli, console
from docks.dry_run import GateOutcome, OperationIntent
from docks.errors import AbortedError, ConfigError


def raiser(exc):
    def handler(args, config):
        raise exc

    return handler


class TestParser:
    def test_remove(self):
        args = cli.build_parser().parse_args(["remove", "10.0.0.1", "-e", "delta", "--dry"])
        assert args.command == "remove"
        assert args.ip == "10.0.0.1"
        assert args.env == "delta"
        assert args.dry is True

    def test_weave_remove(self):
        args = cli.build_parser().parse_args(["weave", "1234", "--remove", "10.0.0.1"])
        assert args.org == "1234"
        assert args.remove == "10.0.0.1"
        assert args.dry is False

    def test_bare_asg_lists(self):
        args = cli.build_parser().parse_args(["asg"])
        assert args.command == "asg"
        assert args.asg_action is None

    def test_asg_scale_in_defaults_to_one(self):
        args = cli.build_parser().parse_args(["asg", "scale-in", "1234", "-e", "delta"])
        assert args.asg_action == "scale-in"
        assert args.org == "1234"
        assert args.number == 1
        assert args.env == "delta"

    def test_asg_lc(self):
        args = cli.build_parser().parse_args(["asg", "lc", "1234", "dock-v2", "--dry"])
        assert args.lc == "dock-v2"
        assert args.dry is True
        assert args.yes is False

    def test_provision(self):
        args = cli.build_parser().parse_args(["provision", "1234", "-y"])
        assert args.command == "provision"
        assert args.org == "1234"
        assert args.yes is True

    def test_every_command_has_a_handler(self):
        parser = cli.build_parser()
        subparsers = next(
            action
            for action in parser._actions
            if isinstance(action, argparse._SubParsersAction)
        )
        assert set(subparsers.choices) == set(cli.HANDLERS)


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_docks_error_returns_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        error = ConfigError("Missing `DEVOPS_SCRIPTS_PATH` env.")
        with patch.dict(cli.HANDLERS, {"list": raiser(error)}):
            assert cli.main(["list", "-e", "gamma"]) == 1

    def test_unknown_env_returns_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert cli.main(["list", "-e", "omega"]) == 1

    def test_keyboard_interrupt(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.dict(cli.HANDLERS, {"list": raiser(KeyboardInterrupt())}):
            assert cli.main(["list"]) == 130

    def test_handler_receives_resolved_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        seen = []
        with patch.dict(cli.HANDLERS, {"aws": lambda args, config: seen.append(config.env_name) or 0}):
            assert cli.main(["aws", "--env", "stage"]) == 0
        assert seen == ["stage"]


class TestConfirm:
    def test_declined_raises(self):
        args = argparse.Namespace(yes=False, dry=False)
        with patch.object(cli.Confirm, "ask", return_value=False):
            with pytest.raises(AbortedError, match="Aborted dock destruction"):
                cli.confirm("Kill?", "Aborted dock destruction", args)

    def test_accepted(self):
        args = argparse.Namespace(yes=False, dry=False)
        with patch.object(cli.Confirm, "ask", return_value=True):
            cli.confirm("Kill?", "Aborted", args)

    @pytest.mark.parametrize("dry", [False, True])
    def test_skipped_with_yes(self, dry):
        with patch.object(cli.Confirm, "ask") as ask:
            cli.confirm("Kill?", "Aborted", argparse.Namespace(yes=True, dry=dry))
        ask.assert_not_called()

    def test_dry_run_still_asks(self):
        args = argparse.Namespace(yes=False, dry=True)
        with patch.object(cli.Confirm, "ask", return_value=False) as ask:
            with pytest.raises(AbortedError, match="Aborted dock destruction"):
                cli.confirm("Kill?", "Aborted dock destruction", args)
        ask.assert_called_once()

    def test_declined_dry_kill_publishes_nothing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.object(cli.Confirm, "ask", return_value=False), \
                patch("docks.services.rabbit.RabbitService.publish") as publish:
            assert cli.main(["kill", "10.0.0.1", "--dry"]) == 1
        publish.assert_not_called()


class TestHandlers:
    def test_kill_publishes_terminate_job(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        outcome = GateOutcome(False, "Published to asg.instance.terminate")
        with patch("docks.services.rabbit.RabbitService.publish", return_value=outcome) as publish:
            assert cli.main(["kill", "10.0.0.1", "--dry", "--yes"]) == 0

        queue, job, intent = publish.call_args.args
        assert queue == "asg.instance.terminate"
        assert job == {"ipAddress": "10.0.0.1"}
        assert intent == OperationIntent.mutate(dry_run=True)

    def test_unhealthy_unknown_dock_without_force(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch("docks.services.swarm.SwarmService.list_docks", return_value=[]), \
                patch("docks.services.rabbit.RabbitService.publish_event") as publish:
            assert cli.main(["unhealthy", "10.0.0.9", "--dry"]) == 1
        publish.assert_not_called()

    def test_unhealthy_publishes_dock_lost(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        docks = [{"name": "n1", "ip": "10.0.0.1", "org": "1234", "containers": 3}]
        outcome = GateOutcome(False, "Published event dock.lost")
        with patch("docks.services.swarm.SwarmService.list_docks", return_value=docks), \
                patch("docks.services.rabbit.RabbitService.publish_event", return_value=outcome) as publish:
            assert cli.main(["unhealthy", "10.0.0.1", "--dry", "--yes"]) == 0

        event, payload, _ = publish.call_args.args
        assert event == "dock.lost"
        assert payload == {"host": "http://10.0.0.1:4242", "githubOrgId": "1234"}

    def test_asg_scale_out_publishes_update(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        group = {"name": "asg-1234", "org": "1234", "min": 1, "desired": 1, "max": 2}
        outcome = GateOutcome(False, "Published to asg.update")
        with patch("docks.services.aws.AwsService.list_auto_scaling_groups", return_value=[group]), \
                patch("docks.services.rabbit.RabbitService.publish", return_value=outcome) as publish:
            assert cli.main(["asg", "scale-out", "1234", "2", "--dry", "--yes"]) == 0

        queue, job, intent = publish.call_args.args
        assert queue == "asg.update"
        assert job == {
            "githubId": "1234",
            "data": {"MinSize": 3, "DesiredCapacity": 3, "MaxSize": 4},
        }
        assert intent == OperationIntent.mutate(dry_run=True)

    def test_asg_delete_missing_group_returns_one(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch("docks.services.aws.AwsService.list_auto_scaling_groups", return_value=[]), \
                patch("docks.services.rabbit.RabbitService.publish") as publish:
            assert cli.main(["asg", "delete", "1234", "--yes"]) == 1
        publish.assert_not_called()

    def test_provision_asks_then_publishes(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        outcome = GateOutcome(False, "Published to cluster-instance-provision")
        with patch.object(cli.Confirm, "ask", return_value=True) as ask, \
                patch("docks.services.rabbit.RabbitService.publish", return_value=outcome) as publish:
            assert cli.main(["provision", "1234", "--dry", "-e", "delta"]) == 0

        assert "provision a new delta dock for org 1234" in ask.call_args.args[0]
        queue, job, _ = publish.call_args.args
        assert queue == "cluster-instance-provision"
        assert job == {"githubId": "1234"}


# ---------------------------------------------------------------------------
# Console rendering
# ---------------------------------------------------------------------------


class TestConsole:
    def test_render_table_fills_missing_cells(self):
        table = console.render_table(["Org", "IP"], [("1234", None)])
        assert [column.header for column in table.columns] == ["Org", "IP"]
        assert list(table.columns[1].cells) == ["-"]

    def test_render_error_colours_by_level(self):
        with patch.object(console.console, "print") as print_:
            console.render_error(AbortedError("Aborted dock termination"))
            console.render_error(ConfigError("Missing `DEVOPS_SCRIPTS_PATH` env."))

        first, second = (call.args[0] for call in print_.call_args_list)
        assert first.startswith("[yellow]✘")
        assert second.startswith("[red]✘")

    def test_configure_logging_levels(self):
        console.configure_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG
        console.configure_logging(verbose=False)
        assert logging.getLogger().level == logging.INFO
