from __future__ import annotations

from typing import Protocol, Sequence, TypeVar

import questionary

from .cli_shared import ListError, NoEligibleContainerError, SelectionAborted
from .resources import ClusterRef, Task, eligible_containers

SHELLS: tuple[str, ...] = ("/bin/bash", "/bin/sh")

T = TypeVar("T")


class Prompter(Protocol):
    def select(self, message: str, labels: Sequence[str]) -> int: ...

    def text(self, message: str) -> str: ...


class QuestionaryPrompter:
    """Searchable list and text prompts on the controlling terminal."""

    def select(self, message: str, labels: Sequence[str]) -> int:
        choices = [questionary.Choice(title=label, value=i) for i, label in enumerate(labels)]
        answer = questionary.select(
            message,
            choices=choices,
            use_search_filter=True,
            use_jk_keys=False,
        ).ask()
        if answer is None:
            raise SelectionAborted(f"cancelled: {message}")
        return int(answer)

    def text(self, message: str) -> str:
        answer = questionary.text(message).ask()
        if answer is None:
            raise SelectionAborted(f"cancelled: {message}")
        return str(answer)


def _choose(prompter: Prompter, message: str, pairs: Sequence[tuple[str, T]]) -> T:
    idx = prompter.select(message, [label for label, _ in pairs])
    if idx < 0 or idx >= len(pairs):
        raise SelectionAborted(f"invalid selection for {message!r}: {idx}")
    return pairs[idx][1]


def ask_mfa_code(prompter: Prompter) -> str:
    return prompter.text("Enter MFA code (leave empty if not using MFA):").strip()


def match_cluster_hint(clusters: Sequence[ClusterRef], hint: str | None) -> ClusterRef | None:
    """Resolve a cluster ARN or friendly name without prompting.

    ARN matches take precedence over friendly-name matches; within each the
    first positional match wins.
    """
    hint = (hint or "").strip()
    if not hint:
        return None
    for c in clusters:
        if c.arn == hint:
            return c
    for c in clusters:
        if c.friendly_name == hint:
            return c
    return None


def resolve_cluster(
    clusters: Sequence[ClusterRef],
    hint: str | None,
    prompter: Prompter,
) -> ClusterRef:
    if not clusters:
        raise ListError("No clusters found")
    matched = match_cluster_hint(clusters, hint)
    if matched is not None:
        return matched
    return _choose(prompter, "Select cluster:", [(c.friendly_name, c) for c in clusters])


def resolve_task(tasks: Sequence[Task], prompter: Prompter) -> Task:
    pairs = [(t.label, t) for t in tasks if t.task_definition_arn]
    if not pairs:
        raise ListError("No tasks found in cluster")
    return _choose(prompter, "Select task:", pairs)


def resolve_container(task: Task, prompter: Prompter) -> str:
    containers = eligible_containers(task)
    if not containers:
        raise NoEligibleContainerError(
            f"no container in task {task.arn} is running the ExecuteCommandAgent"
        )
    if len(containers) == 1:
        return containers[0].name
    return _choose(prompter, "Select container:", [(c.name, c.name) for c in containers])


def resolve_shell(prompter: Prompter) -> str:
    return _choose(prompter, "Select shell:", [(s, s) for s in SHELLS])
