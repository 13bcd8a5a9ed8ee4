from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Callable

import click
import typer
from rich.text import Text

from . import __version__
from .cli_shared import (
    DEFAULT_AWS_CLI,
    ECS_EXEC_AWS_CLI,
    ECS_EXEC_CHECKER_URL,
    ECS_EXEC_CLUSTER,
    ListError,
    OpError,
    RunOpts,
    UsageError,
    _CONSOLE,
    _account_session,
    _bootstrap_env,
    _eprint,
    _env_or_none,
    _rich_error,
    _rich_warning,
)
from .credentials import SessionCredentials, ambient_credentials, credential_source, refresh, session_for
from .launcher import LaunchResult, launch
from .resources import ClusterRef, Task, list_clusters, list_running_tasks
from .selector import (
    Prompter,
    QuestionaryPrompter,
    ask_mfa_code,
    resolve_cluster,
    resolve_container,
    resolve_shell,
    resolve_task,
)
from .validator import CHECKER_URL, validate


@dataclass(frozen=True)
class Selection:
    cluster: ClusterRef
    task: Task
    container: str
    shell: str


def execute_command_args(selection: Selection) -> list[str]:
    return [
        "ecs",
        "execute-command",
        "--cluster",
        selection.cluster.arn,
        "--task",
        selection.task.arn,
        "--container",
        selection.container,
        "--interactive",
        "--command",
        selection.shell,
    ]


def _prompter() -> Prompter:
    return QuestionaryPrompter()


def _info(opts: RunOpts, msg: str) -> None:
    if not opts.quiet:
        _CONSOLE.print(msg)


def _print_banner(opts: RunOpts) -> None:
    if opts.quiet:
        return
    if opts.clear:
        _CONSOLE.clear()
    _CONSOLE.rule(Text("ECS-Exec", style="bold yellow"), style="yellow")


def _report_exit(label: str, result: LaunchResult) -> None:
    if result.signal is not None:
        _eprint(f"{label} terminated by signal {result.signal}")
    elif not result.ok:
        _eprint(f"{label} exited with code {result.returncode}")


def _resolve_credentials(
    opts: RunOpts,
    session: Any,
    prompter: Prompter,
) -> tuple[Any, SessionCredentials | None]:
    credentials = ambient_credentials(session)
    if not opts.mfa:
        return session, credentials
    code = ask_mfa_code(prompter)
    if not code:
        return session, credentials
    credentials = refresh(session, code)
    _info(opts, "[green]MFA session credentials issued[/green]")
    return session_for(credentials, region=getattr(session, "region_name", None)), credentials


def run_session(
    opts: RunOpts,
    *,
    prompter: Prompter,
    session_factory: Callable[..., Any] = _account_session,
) -> LaunchResult:
    session = session_factory(profile=opts.profile, region=opts.region)
    _info(opts, f"[dim]AWS credentials: {credential_source(profile=opts.profile)}[/dim]")
    session, credentials = _resolve_credentials(opts, session, prompter)

    with _CONSOLE.status("Fetching clusters, please wait..."):
        clusters = list_clusters(session)
    if not clusters:
        raise ListError("No clusters found")
    cluster = resolve_cluster(clusters, opts.cluster, prompter)

    with _CONSOLE.status("Fetching tasks, please wait..."):
        tasks = list_running_tasks(session, cluster.arn)
    if not tasks:
        raise ListError("No tasks found in cluster")
    task = resolve_task(tasks, prompter)

    if opts.test:
        check = validate(cluster.arn, task.arn, credentials, url=opts.checker_url or CHECKER_URL)
        if not check.ok:
            _rich_warning("check-ecs-exec.sh reported problems; continuing anyway")

    selection = Selection(
        cluster=cluster,
        task=task,
        container=resolve_container(task, prompter),
        shell=resolve_shell(prompter),
    )
    result = launch(opts.aws_cli or DEFAULT_AWS_CLI, execute_command_args(selection), credentials)
    _report_exit(opts.aws_cli or DEFAULT_AWS_CLI, result)
    return result


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ecs-exec {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name="ecs-exec",
    help="Open an interactive shell in a running ECS task container.",
    add_completion=False,
)


@app.command(help="Pick a cluster, task and container, then run aws ecs execute-command.")
def exec_shell(
    mfa: bool = typer.Option(True, "--mfa/--no-mfa", help="Use MFA authentication"),
    cluster: str | None = typer.Option(
        None,
        "--cluster",
        help=f"ECS cluster name or ARN (env override: {ECS_EXEC_CLUSTER})",
    ),
    test: bool = typer.Option(
        True,
        "--test/--no-test",
        help="Run check-ecs-exec to validate your configuration",
    ),
    profile: str | None = typer.Option(None, "--profile", help="AWS profile (default: AWS_PROFILE)"),
    region: str | None = typer.Option(None, "--region", help="AWS region (default: AWS_REGION)"),
    aws_cli: str | None = typer.Option(
        None,
        "--aws-cli",
        help=f"AWS CLI executable (env override: {ECS_EXEC_AWS_CLI})",
    ),
    no_clear: bool = typer.Option(False, "--no-clear", help="Do not clear the terminal first"),
    quiet: bool = typer.Option(False, "--quiet", help="Hide banner and informational output"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    opts = RunOpts(
        mfa=mfa,
        test=test,
        cluster=(cluster or _env_or_none(ECS_EXEC_CLUSTER) or "").strip(),
        profile=(profile or "").strip(),
        region=(region or "").strip(),
        aws_cli=(aws_cli or _env_or_none(ECS_EXEC_AWS_CLI) or DEFAULT_AWS_CLI).strip(),
        checker_url=(_env_or_none(ECS_EXEC_CHECKER_URL) or "").strip(),
        clear=not no_clear,
        quiet=quiet,
    )
    _print_banner(opts)
    run_session(opts, prompter=_prompter(), session_factory=_account_session)


# Newer typer releases raise their own vendored copy of the click exceptions.
_CLICK_ERRORS = (click.ClickException,) + tuple(
    c for c in typer.BadParameter.__mro__ if c.__name__ == "ClickException"
)
_CLICK_USAGE_ERRORS = (click.UsageError,) + tuple(
    c for c in typer.BadParameter.__mro__ if c.__name__ == "UsageError"
)
_CLICK_ABORTS = (click.exceptions.Abort, typer.Abort)


def _render_usage_error_with_help(*, message: str, ctx: Any = None) -> None:
    _rich_error(message)
    help_text = ""
    get_help = getattr(ctx, "get_help", None)
    if callable(get_help):
        try:
            help_text = str(get_help() or "").strip()
        except Exception:
            help_text = ""
    if help_text:
        _eprint("")
        _eprint(help_text)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    _bootstrap_env()
    try:
        result = app(args=argv, prog_name="ecs-exec", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except _CLICK_ABORTS:
        _rich_error("aborted")
        return 1
    except _CLICK_ERRORS as e:
        if isinstance(e, _CLICK_USAGE_ERRORS):
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
            return int(e.exit_code)
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
