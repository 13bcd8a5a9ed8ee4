from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .cli_shared import ListError

EXECUTE_COMMAND_AGENT = "ExecuteCommandAgent"
DEFAULT_CONTAINER_NAME = "container"

# describe_tasks accepts at most 100 task ARNs per call.
_DESCRIBE_TASKS_BATCH = 100

_CLUSTER_PREFIX_RE = re.compile(r"^(.+)cluster/")
_TASK_DEF_PREFIX_RE = re.compile(r"^(.+)task-definition/")


def cluster_friendly_name(cluster_arn: str) -> str:
    return _CLUSTER_PREFIX_RE.sub("", cluster_arn or "", count=1)


def task_def_friendly_name(task_definition_arn: str) -> str:
    return _TASK_DEF_PREFIX_RE.sub("", task_definition_arn or "", count=1)


@dataclass(frozen=True)
class ClusterRef:
    arn: str

    @property
    def friendly_name(self) -> str:
        return cluster_friendly_name(self.arn)


@dataclass(frozen=True)
class Container:
    name: str
    managed_agents: tuple[str, ...] = ()

    @property
    def execute_command_enabled(self) -> bool:
        return EXECUTE_COMMAND_AGENT in self.managed_agents


@dataclass(frozen=True)
class Task:
    arn: str
    task_definition_arn: str = ""
    launch_type: str = ""
    enable_execute_command: bool = False
    containers: tuple[Container, ...] = field(default_factory=tuple)

    @property
    def friendly_name(self) -> str:
        return task_def_friendly_name(self.task_definition_arn)

    @property
    def label(self) -> str:
        return f"{self.friendly_name} - ({self.launch_type})"


def _container_from_api(raw: dict[str, Any]) -> Container:
    agents = raw.get("managedAgents") or []
    names = tuple(
        str(a.get("name") or "") for a in agents if isinstance(a, dict)
    )
    return Container(
        name=str(raw.get("name") or "").strip() or DEFAULT_CONTAINER_NAME,
        managed_agents=names,
    )


def task_from_api(raw: dict[str, Any]) -> Task:
    containers = raw.get("containers") or []
    return Task(
        arn=str(raw.get("taskArn") or "").strip(),
        task_definition_arn=str(raw.get("taskDefinitionArn") or "").strip(),
        launch_type=str(raw.get("launchType") or "").strip(),
        enable_execute_command=bool(raw.get("enableExecuteCommand")),
        containers=tuple(_container_from_api(c) for c in containers if isinstance(c, dict)),
    )


def list_clusters(session: Any) -> list[ClusterRef]:
    arns: list[str] = []
    try:
        ecs = session.client("ecs")
        for page in ecs.get_paginator("list_clusters").paginate():
            arns.extend(page.get("clusterArns") or [])
    except Exception as e:
        raise ListError(f"ecs list-clusters failed: {e}") from e
    return [ClusterRef(arn=str(a)) for a in arns if str(a or "").strip()]


def list_running_tasks(session: Any, cluster: str) -> list[Task]:
    """Running tasks in ``cluster`` that have ECS Exec enabled."""
    task_arns: list[str] = []
    try:
        ecs = session.client("ecs")
        paginator = ecs.get_paginator("list_tasks")
        for page in paginator.paginate(cluster=cluster, desiredStatus="RUNNING"):
            task_arns.extend(page.get("taskArns") or [])
    except Exception as e:
        raise ListError(f"ecs list-tasks failed for cluster {cluster!r}: {e}") from e
    if not task_arns:
        return []

    raw_tasks: list[dict[str, Any]] = []
    for start in range(0, len(task_arns), _DESCRIBE_TASKS_BATCH):
        batch = task_arns[start : start + _DESCRIBE_TASKS_BATCH]
        try:
            resp = ecs.describe_tasks(cluster=cluster, tasks=batch)
        except Exception as e:
            raise ListError(f"ecs describe-tasks failed for cluster {cluster!r}: {e}") from e
        raw_tasks.extend(t for t in (resp.get("tasks") or []) if isinstance(t, dict))

    tasks = [task_from_api(t) for t in raw_tasks]
    return [t for t in tasks if t.enable_execute_command and t.arn]


def eligible_containers(task: Task) -> list[Container]:
    return [c for c in task.containers or () if c.execute_command_enabled]
