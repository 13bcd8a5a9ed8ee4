from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Any

import boto3
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.markup import escape


class EcsExecError(Exception):
    pass


class UsageError(EcsExecError):
    pass


class OpError(EcsExecError):
    pass


class AuthError(OpError):
    """Raised when the MFA exchange does not yield session credentials."""


class ListError(OpError):
    """Raised when clusters or tasks cannot be listed."""


class SelectionAborted(OpError):
    """Raised when the operator cancels an interactive prompt."""


class NoEligibleContainerError(OpError):
    """Raised when the selected task has no container running the exec agent."""


class ValidationInfraError(OpError):
    """Raised when the diagnostic script cannot be fetched or started."""


class LaunchError(OpError):
    """Raised when a child process cannot be started."""


ECS_EXEC_CLUSTER = "ECS_EXEC_CLUSTER"
ECS_EXEC_AWS_CLI = "ECS_EXEC_AWS_CLI"
ECS_EXEC_CHECKER_URL = "ECS_EXEC_CHECKER_URL"

DEFAULT_AWS_CLI = "aws"


@dataclass(frozen=True)
class RunOpts:
    mfa: bool = True
    test: bool = True
    cluster: str = ""
    profile: str = ""
    region: str = ""
    aws_cli: str = DEFAULT_AWS_CLI
    checker_url: str = ""
    clear: bool = True
    quiet: bool = False


_CONSOLE = Console()
_ERROR_CONSOLE = Console(stderr=True)


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}")


def _rich_warning(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold yellow]warning:[/bold yellow] {escape(msg)}")


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _bootstrap_env() -> None:
    # Search from the working directory, not this module. Exported values win.
    load_dotenv(find_dotenv(usecwd=True))


def _account_session(*, profile: str = "", region: str = "") -> Any:
    profile = (profile or _env_or_none("AWS_PROFILE") or "").strip()
    region = (region or _env_or_none("AWS_REGION", "AWS_DEFAULT_REGION") or "").strip()
    try:
        return boto3.session.Session(
            profile_name=profile or None,
            region_name=region or None,
        )
    except Exception as e:
        raise UsageError(f"cannot create AWS session for profile {profile!r}: {e}") from e
