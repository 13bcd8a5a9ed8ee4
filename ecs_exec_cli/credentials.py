from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import boto3

from .cli_shared import AuthError, _env_or_none

MFA_SESSION_DURATION_SECONDS = 3600


@dataclass(frozen=True)
class SessionCredentials:
    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    expiration: datetime | None = None

    def env(self) -> dict[str, str]:
        out = {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
        }
        if self.session_token:
            out["AWS_SESSION_TOKEN"] = self.session_token
        return out


def ambient_credentials(session: Any) -> SessionCredentials | None:
    """Credentials boto3 resolves from env, profile or instance metadata."""
    creds = session.get_credentials()
    if creds is None:
        return None
    frozen = creds.get_frozen_credentials()
    access_key_id = str(frozen.access_key or "").strip()
    secret_access_key = str(frozen.secret_key or "").strip()
    if not access_key_id or not secret_access_key:
        return None
    return SessionCredentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=str(frozen.token or "").strip() or None,
    )


def refresh(session: Any, mfa_code: str) -> SessionCredentials:
    """Exchange an MFA code for temporary session credentials.

    The first MFA device registered to the calling IAM user is used. The
    returned set replaces whatever credentials the caller held before.
    """
    try:
        iam = session.client("iam")
        devices = iam.list_mfa_devices().get("MFADevices") or []
    except Exception as e:
        raise AuthError(f"MFA failed: cannot list MFA devices: {e}") from e
    if not devices:
        raise AuthError("MFA failed: No MFA devices found")
    serial_number = str(devices[0].get("SerialNumber") or "").strip()
    if not serial_number:
        raise AuthError("MFA failed: MFA device has no serial number")

    try:
        sts = session.client("sts")
        resp = sts.get_session_token(
            DurationSeconds=MFA_SESSION_DURATION_SECONDS,
            SerialNumber=serial_number,
            TokenCode=mfa_code.strip(),
        )
    except Exception as e:
        raise AuthError(f"MFA failed: {e}") from e

    creds = resp.get("Credentials")
    if not isinstance(creds, dict):
        raise AuthError("MFA failed: Credentials not generated")
    access_key_id = str(creds.get("AccessKeyId") or "").strip()
    secret_access_key = str(creds.get("SecretAccessKey") or "").strip()
    if not access_key_id or not secret_access_key:
        raise AuthError("MFA failed: Credentials not generated")
    expiration = creds.get("Expiration")
    return SessionCredentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=str(creds.get("SessionToken") or "").strip() or None,
        expiration=expiration if isinstance(expiration, datetime) else None,
    )


def session_for(credentials: SessionCredentials, *, region: str | None = None) -> Any:
    return boto3.session.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        aws_session_token=credentials.session_token,
        region_name=region or None,
    )


def credential_source(*, profile: str = "") -> str:
    # Explicit env credentials always win in boto3's provider chain.
    access_key_id = str(_env_or_none("AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY") or "").strip()
    secret_access_key = str(_env_or_none("AWS_SECRET_ACCESS_KEY", "AWS_SECRET_KEY") or "").strip()
    if access_key_id and secret_access_key:
        return "env(AWS_ACCESS_KEY_ID)"

    if _env_or_none("AWS_WEB_IDENTITY_TOKEN_FILE") or _env_or_none("AWS_ROLE_ARN"):
        return "web-identity"

    if _env_or_none(
        "AWS_CONTAINER_CREDENTIALS_RELATIVE_URI",
        "AWS_CONTAINER_CREDENTIALS_FULL_URI",
    ):
        return "container-role"

    profile = (profile or _env_or_none("AWS_PROFILE") or "").strip()
    if profile:
        return f"profile({profile})"
    return "default-chain"
