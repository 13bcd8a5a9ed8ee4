from __future__ import annotations

import os
import tempfile
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .cli_shared import LaunchError, ValidationInfraError
from .credentials import SessionCredentials
from .launcher import LaunchResult, launch

CHECKER_URL = (
    "https://raw.githubusercontent.com/aws-containers/amazon-ecs-exec-checker/main/check-ecs-exec.sh"
)
CHECKER_FILENAME = "check-ecs-exec.sh"


def _http_get(*, url: str, timeout_seconds: int = 30) -> tuple[int, bytes]:
    req = Request(url, method="GET")
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:
            status = getattr(resp, "status", 200)
            return int(status), resp.read()
    except HTTPError as e:
        data = e.read() if hasattr(e, "read") else b""
        return int(getattr(e, "code", 0) or 0), data
    except URLError as e:
        raise ValidationInfraError(f"failed to download {url}: {e}") from e


def download_script(url: str, dest_dir: Path) -> Path:
    status, body = _http_get(url=url)
    if status < 200 or status >= 300:
        raise ValidationInfraError(f"failed to download {url}: status={status}")
    if not body:
        raise ValidationInfraError(f"failed to download {url}: empty body")
    path = dest_dir / CHECKER_FILENAME
    path.write_bytes(body)
    os.chmod(path, 0o755)
    return path


def validate(
    cluster: str,
    task_arn: str,
    credentials: SessionCredentials | None,
    *,
    url: str = CHECKER_URL,
) -> LaunchResult:
    """Run check-ecs-exec.sh against one task.

    The script's exit status is returned as-is; callers treat a non-zero
    status as diagnostic output only.
    """
    if credentials is None:
        raise LaunchError("no AWS credentials available to run the ECS Exec checker")
    with tempfile.TemporaryDirectory(prefix="ecs-exec-check-") as tmp:
        script = download_script(url or CHECKER_URL, Path(tmp))
        try:
            return launch(str(script), [cluster, task_arn], credentials)
        except LaunchError as e:
            raise ValidationInfraError(f"cannot run {CHECKER_FILENAME}: {e}") from e
