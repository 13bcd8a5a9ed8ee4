from __future__ import annotations

import re
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from ecs_exec_cli import __version__
from ecs_exec_cli.cli_shared import SelectionAborted
from ecs_exec_cli.credentials import SessionCredentials
from ecs_exec_cli.launcher import LaunchResult
from ecs_exec_cli.main import app, main


runner = CliRunner()

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")

_PROD = "arn:aws:ecs:us-east-1:111122223333:cluster/prod"


def _plain(s: str) -> str:
    return _ANSI_RE.sub("", s)


class FakePrompter:
    def __init__(self, selects=(), texts=()):
        self.selects = list(selects)
        self.texts = list(texts)
        self.calls: list[tuple[str, list[str]]] = []

    def select(self, message, labels):
        self.calls.append((message, list(labels)))
        answer = self.selects.pop(0)
        if answer is None:
            raise SelectionAborted(f"cancelled: {message}")
        return answer

    def text(self, message):
        self.calls.append((message, []))
        return self.texts.pop(0)


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages

    def paginate(self, **kwargs):
        del kwargs
        return iter(self.pages)


class FakeEcs:
    def __init__(self, clusters, tasks):
        self.clusters = clusters
        self.tasks = tasks

    def get_paginator(self, name):
        if name == "list_clusters":
            return FakePaginator([{"clusterArns": self.clusters}])
        return FakePaginator([{"taskArns": [t["taskArn"] for t in self.tasks]}])

    def describe_tasks(self, **kwargs):
        return {"tasks": [t for t in self.tasks if t["taskArn"] in kwargs["tasks"]]}


class FakeSession:
    region_name = "us-east-1"

    def __init__(self, ecs, *, access_key="AKIAAMBIENT"):
        self.ecs = ecs
        self.access_key = access_key

    def client(self, name):
        assert name == "ecs"
        return self.ecs

    def get_credentials(self):
        if not self.access_key:
            return None
        frozen = SimpleNamespace(access_key=self.access_key, secret_key="ambient-secret", token=None)
        return SimpleNamespace(get_frozen_credentials=lambda: frozen)


def _tasks():
    return [
        {
            "taskArn": "arn:task/disabled",
            "taskDefinitionArn": "arn:x:task-definition/web:1",
            "launchType": "FARGATE",
            "enableExecuteCommand": False,
        },
        {
            "taskArn": "arn:task/enabled",
            "taskDefinitionArn": "arn:x:task-definition/web:2",
            "launchType": "FARGATE",
            "enableExecuteCommand": True,
            "containers": [{"name": "app", "managedAgents": [{"name": "ExecuteCommandAgent"}]}],
        },
    ]


@pytest.fixture
def harness(monkeypatch):
    state: dict[str, object] = {
        "session": FakeSession(FakeEcs([_PROD], _tasks())),
        "prompter": FakePrompter(selects=[0, 0]),
        "launches": [],
        "validations": [],
        "validate_code": 0,
    }

    def _fake_session(*, profile="", region=""):
        state["profile"] = profile
        state["region"] = region
        return state["session"]

    def _fake_launch(command, args, credentials):
        state["launches"].append((command, list(args), credentials))
        return LaunchResult(returncode=0)

    def _fake_validate(cluster, task_arn, credentials, *, url):
        state["validations"].append((cluster, task_arn, credentials, url))
        return LaunchResult(returncode=int(state["validate_code"]))

    monkeypatch.setattr("ecs_exec_cli.main._account_session", _fake_session)
    monkeypatch.setattr("ecs_exec_cli.main._prompter", lambda: state["prompter"])
    monkeypatch.setattr("ecs_exec_cli.main.launch", _fake_launch)
    monkeypatch.setattr("ecs_exec_cli.main.validate", _fake_validate)
    monkeypatch.delenv("ECS_EXEC_CLUSTER", raising=False)
    monkeypatch.delenv("ECS_EXEC_AWS_CLI", raising=False)
    monkeypatch.delenv("ECS_EXEC_CHECKER_URL", raising=False)
    return state


def test_full_run_with_cluster_hint_and_single_container(harness, capsys):
    rc = main(["--no-mfa", "--cluster", "prod", "--no-clear"])

    assert rc == 0
    prompter = harness["prompter"]
    assert [c[0] for c in prompter.calls] == ["Select task:", "Select shell:"]
    assert prompter.calls[0][1] == ["web:2 - (FARGATE)"]
    assert harness["validations"][0][:2] == (_PROD, "arn:task/enabled")
    command, args, creds = harness["launches"][0]
    assert command == "aws"
    assert args == [
        "ecs",
        "execute-command",
        "--cluster",
        _PROD,
        "--task",
        "arn:task/enabled",
        "--container",
        "app",
        "--interactive",
        "--command",
        "/bin/bash",
    ]
    assert creds == SessionCredentials("AKIAAMBIENT", "ambient-secret")


def test_failed_diagnostic_script_does_not_stop_the_run(harness, capsys):
    harness["validate_code"] = 1
    rc = main(["--no-mfa", "--cluster", "prod"])
    assert rc == 0
    assert len(harness["launches"]) == 1
    assert "continuing anyway" in _plain(capsys.readouterr().err)


def test_no_test_skips_diagnostic_script(harness):
    assert main(["--no-mfa", "--no-test", "--cluster", _PROD]) == 0
    assert harness["validations"] == []


def test_empty_mfa_code_keeps_ambient_credentials(harness, monkeypatch):
    harness["prompter"] = FakePrompter(selects=[0, 0], texts=[""])
    monkeypatch.setattr(
        "ecs_exec_cli.main.refresh",
        lambda *a, **k: pytest.fail("refresh must not run for an empty MFA code"),
    )
    assert main(["--cluster", "prod", "--no-test"]) == 0
    assert harness["launches"][0][2].access_key_id == "AKIAAMBIENT"


def test_mfa_code_replaces_credentials_for_api_calls_and_launch(harness, monkeypatch):
    issued = SessionCredentials("ASIAMFA", "mfa-secret", "mfa-token")
    mfa_session = FakeSession(FakeEcs([_PROD], _tasks()), access_key="ASIAMFA")
    harness["prompter"] = FakePrompter(selects=[0, 1], texts=["123456"])
    seen: dict[str, object] = {}

    def _fake_refresh(session, code):
        seen["code"] = code
        return issued

    def _fake_session_for(credentials, *, region=None):
        seen["bound"] = (credentials, region)
        return mfa_session

    monkeypatch.setattr("ecs_exec_cli.main.refresh", _fake_refresh)
    monkeypatch.setattr("ecs_exec_cli.main.session_for", _fake_session_for)

    assert main(["--cluster", "prod"]) == 0
    assert seen == {"code": "123456", "bound": (issued, "us-east-1")}
    assert harness["validations"][0][2] is issued
    command, args, creds = harness["launches"][0]
    assert creds is issued
    assert args[-1] == "/bin/sh"


def test_mfa_failure_exits_one(harness, monkeypatch, capsys):
    from ecs_exec_cli.cli_shared import AuthError

    harness["prompter"] = FakePrompter(texts=["000000"])

    def _fail(session, code):
        raise AuthError("MFA failed: No MFA devices found")

    monkeypatch.setattr("ecs_exec_cli.main.refresh", _fail)
    assert main(["--cluster", "prod"]) == 1
    assert "MFA failed" in _plain(capsys.readouterr().err)
    assert harness["launches"] == []


def test_no_clusters_exits_one(harness, capsys):
    harness["session"] = FakeSession(FakeEcs([], []))
    assert main(["--no-mfa"]) == 1
    assert "No clusters found" in _plain(capsys.readouterr().err)


def test_no_eligible_tasks_exits_one(harness, capsys):
    harness["session"] = FakeSession(FakeEcs([_PROD], _tasks()[:1]))
    assert main(["--no-mfa", "--cluster", "prod"]) == 1
    assert "No tasks found in cluster" in _plain(capsys.readouterr().err)


def test_cancelled_prompt_exits_one_without_launch(harness, capsys):
    harness["prompter"] = FakePrompter(selects=[None])
    assert main(["--no-mfa"]) == 1
    assert "cancelled" in _plain(capsys.readouterr().err)
    assert harness["launches"] == []


def test_cluster_hint_from_env(harness, monkeypatch):
    monkeypatch.setenv("ECS_EXEC_CLUSTER", "prod")
    assert main(["--no-mfa", "--no-test"]) == 0
    assert [c[0] for c in harness["prompter"].calls] == ["Select task:", "Select shell:"]


def test_aws_cli_override(harness):
    assert main(["--no-mfa", "--no-test", "--cluster", "prod", "--aws-cli", "/opt/aws/bin/aws"]) == 0
    assert harness["launches"][0][0] == "/opt/aws/bin/aws"


def test_profile_and_region_reach_session_factory(harness):
    assert main(["--no-mfa", "--no-test", "--cluster", "prod", "--profile", "dev", "--region", "eu-west-1"]) == 0
    assert harness["profile"] == "dev"
    assert harness["region"] == "eu-west-1"


def test_missing_credentials_is_launch_error(harness, monkeypatch, capsys):
    from ecs_exec_cli import launcher

    harness["session"] = FakeSession(FakeEcs([_PROD], _tasks()), access_key="")
    monkeypatch.setattr("ecs_exec_cli.main.launch", launcher.launch)
    monkeypatch.setattr(
        "ecs_exec_cli.launcher.subprocess.run",
        lambda *a, **k: pytest.fail("no child process without credentials"),
    )
    assert main(["--no-mfa", "--no-test", "--cluster", "prod"]) == 1
    assert "no AWS credentials" in _plain(capsys.readouterr().err)


def test_unknown_option_is_usage_error(harness, capsys):
    assert main(["--bogus"]) == 2
    assert "--bogus" in _plain(capsys.readouterr().err)


def test_help_lists_flags():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    out = _plain(result.stdout)
    for flag in ("--mfa", "--cluster", "--test", "--no-test"):
        assert flag in out


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == f"ecs-exec {__version__}"


def test_missing_region_exits_one_with_list_error(monkeypatch, tmp_path, capsys):
    for name in ("AWS_REGION", "AWS_DEFAULT_REGION", "AWS_PROFILE", "ECS_EXEC_CLUSTER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "credentials"))
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.chdir(tmp_path)

    assert main(["--no-mfa", "--no-test", "--no-clear", "--quiet"]) == 1
    assert "list-clusters failed" in _plain(capsys.readouterr().err)


def test_bad_parameter_from_typer_is_usage_error(harness, monkeypatch, capsys):
    import typer

    def _bad(*a, **k):
        raise typer.BadParameter("cluster hint is malformed")

    monkeypatch.setattr("ecs_exec_cli.main.run_session", _bad)
    assert main(["--no-mfa", "--no-clear", "--quiet"]) == 2
    assert "cluster hint is malformed" in _plain(capsys.readouterr().err)
