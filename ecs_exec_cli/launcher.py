from __future__ import annotations

import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Sequence

from .cli_shared import LaunchError
from .credentials import SessionCredentials


@dataclass(frozen=True)
class LaunchResult:
    returncode: int
    signal: int | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def child_env(credentials: SessionCredentials) -> dict[str, str]:
    env = dict(os.environ)
    # A token inherited from the parent would not match the injected key pair.
    env.pop("AWS_SESSION_TOKEN", None)
    env.pop("AWS_SECURITY_TOKEN", None)
    env.update(credentials.env())
    return env


def launch(
    command: str,
    args: Sequence[str],
    credentials: SessionCredentials | None,
) -> LaunchResult:
    """Run ``command`` with the terminal attached and wait for it to exit.

    Ctrl+C is ignored by this process while the child runs so the interrupt
    reaches the child (and, for ``execute-command``, the remote shell).
    """
    if credentials is None:
        raise LaunchError(f"no AWS credentials available to run {command}")
    argv = [command, *args]
    env = child_env(credentials)
    # Signal handlers can only be installed from the main thread.
    on_main = threading.current_thread() is threading.main_thread()
    old_sigint = signal.getsignal(signal.SIGINT) if on_main else None
    try:
        if on_main:
            signal.signal(signal.SIGINT, lambda _signum, _frame: None)
        proc = subprocess.run(argv, env=env)
    except OSError as e:
        raise LaunchError(f"failed to start {command}: {e}") from e
    finally:
        if on_main:
            signal.signal(signal.SIGINT, old_sigint)
    code = int(proc.returncode)
    if code < 0:
        return LaunchResult(returncode=code, signal=-code)
    return LaunchResult(returncode=code)
