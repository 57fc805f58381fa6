"""
Salesforce adapter readiness.

The transfer engine logs in with the ``SF_*`` environment variables. These
helpers report whether that can work (library importable, credentials present,
optionally a real login) without touching any lead data.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import import_module
from typing import Any, Literal, Mapping

import requests

from leadbridge.transfer.metrics import record_salesforce_auth_attempt

REQUIRED_ENV_VARS: tuple[str, ...] = ("SF_USERNAME", "SF_PASSWORD", "SF_SECURITY_TOKEN")


class SalesforceAdapterError(RuntimeError):
    """Base error for Salesforce adapter readiness issues."""


class SalesforceAdapterDependencyError(SalesforceAdapterError):
    """simple-salesforce cannot be imported."""


class SalesforceAdapterConfigError(SalesforceAdapterError):
    """Required ``SF_*`` environment variables are missing."""


class SalesforceAdapterAuthError(SalesforceAdapterError):
    """The configured credentials were rejected at login."""


@dataclass(frozen=True)
class SalesforceAdapterReadiness:
    dependency_error: str | None
    missing_env_vars: tuple[str, ...]
    auth_status: Literal["skipped", "ok", "failed"] = "skipped"
    auth_error: str | None = None

    @property
    def status(self) -> str:
        if self.dependency_error:
            return "missing-deps"
        if self.missing_env_vars:
            return "missing-env"
        if self.auth_status == "failed":
            return "auth-error"
        return "ready"

    def messages(self) -> tuple[str, ...]:
        messages = []
        if self.dependency_error:
            messages.append(self.dependency_error)
        if self.missing_env_vars:
            messages.append(f"Missing required Salesforce env vars: {', '.join(self.missing_env_vars)}")
        if self.auth_error:
            messages.append(self.auth_error)
        return tuple(messages)

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "missing_env_vars": list(self.missing_env_vars),
            "auth_status": self.auth_status,
            "messages": list(self.messages()),
        }


def _import_simple_salesforce() -> tuple[Any, str | None]:
    try:
        module = import_module("simple_salesforce")
    except ImportError as exc:
        return None, f"simple-salesforce import failed: {exc}"
    if not hasattr(module, "Salesforce") or not hasattr(module, "SalesforceAuthenticationFailed"):
        return None, "simple-salesforce is missing Salesforce/SalesforceAuthenticationFailed; upgrade to >= 1.12.5."
    return module, None


def _login_kwargs(env: Mapping[str, str]) -> dict[str, str]:
    kwargs = {
        "username": env["SF_USERNAME"],
        "password": env["SF_PASSWORD"],
        "security_token": env["SF_SECURITY_TOKEN"],
        "domain": env.get("SF_DOMAIN") or "login",
    }
    if env.get("SF_ORG_ID"):
        kwargs["organizationId"] = env["SF_ORG_ID"]
    if env.get("SF_API_VERSION"):
        kwargs["version"] = env["SF_API_VERSION"]
    return kwargs


def check_salesforce_adapter_readiness(
    env: Mapping[str, str] | None = None,
    *,
    require_auth_ping: bool = False,
) -> SalesforceAdapterReadiness:
    """Report adapter readiness without raising; ``require_auth_ping`` also attempts a login."""

    env = os.environ if env is None else env
    module, dependency_error = _import_simple_salesforce()
    missing_env = tuple(sorted(var for var in REQUIRED_ENV_VARS if not env.get(var)))
    if dependency_error or missing_env or not require_auth_ping:
        return SalesforceAdapterReadiness(dependency_error, missing_env)

    try:
        module.Salesforce(**_login_kwargs(env))
    except module.SalesforceAuthenticationFailed as exc:
        return SalesforceAdapterReadiness(None, (), "failed", f"Salesforce authentication failed: {exc}")
    except requests.RequestException as exc:
        return SalesforceAdapterReadiness(None, (), "failed", f"Salesforce login request failed: {exc}")
    return SalesforceAdapterReadiness(None, (), "ok")


def ensure_salesforce_adapter_ready(
    env: Mapping[str, str] | None = None,
    *,
    require_auth_ping: bool = False,
) -> SalesforceAdapterReadiness:
    """Like ``check_salesforce_adapter_readiness`` but raises the matching adapter error."""

    readiness = check_salesforce_adapter_readiness(env=env, require_auth_ping=require_auth_ping)
    if readiness.auth_status != "skipped":
        record_salesforce_auth_attempt("success" if readiness.auth_status == "ok" else "failure")
    if readiness.dependency_error:
        raise SalesforceAdapterDependencyError(readiness.dependency_error)
    if readiness.missing_env_vars:
        raise SalesforceAdapterConfigError(
            "Salesforce adapter configured but missing required env vars: "
            + ", ".join(readiness.missing_env_vars)
            + ". Set these or disable the transfer engine."
        )
    if readiness.auth_status == "failed":
        raise SalesforceAdapterAuthError(readiness.auth_error or "Salesforce authentication failed.")
    return readiness


__all__ = [
    "REQUIRED_ENV_VARS",
    "SalesforceAdapterError",
    "SalesforceAdapterDependencyError",
    "SalesforceAdapterConfigError",
    "SalesforceAdapterAuthError",
    "SalesforceAdapterReadiness",
    "check_salesforce_adapter_readiness",
    "ensure_salesforce_adapter_ready",
]
