"""Semantic validation of a deployment spec.

Every check runs on every call, so the caller sees all problems at once.
"""

import ipaddress
import logging
import re
from typing import List, Optional, Sequence

from proxlite.errors import SpecValidationError, ValidationIssue
from proxlite.models.spec import REQUIRED_SECRETS, SpecModel, StaticAddressing


logger = logging.getLogger(__name__)

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
SECRET_FORBIDDEN_CHARS = ('"', "\\", "$", "`", "\n", "\r")
ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_resources(spec: SpecModel) -> List[ValidationIssue]:
    issues = []
    resources = spec.resources
    for name in ("cpu_cores", "memory_mb", "disk_gb"):
        if getattr(resources, name) <= 0:
            issues.append(ValidationIssue(f"resources.{name}", "must be a positive integer"))
    if resources.swap_mb < 0:
        issues.append(ValidationIssue("resources.swap_mb", "must not be negative"))
    return issues


def _check_storage(spec: SpecModel, storage_pools: Optional[Sequence[str]]) -> List[ValidationIssue]:
    if not spec.storage_target.strip():
        return [ValidationIssue("storage_target", "must not be empty")]
    if storage_pools is not None and spec.storage_target not in storage_pools:
        available = ", ".join(storage_pools) or "none"
        return [ValidationIssue(
            "storage_target",
            f"'{spec.storage_target}' does not accept container root filesystems "
            f"(available: {available})",
        )]
    return []


def _check_network(spec: SpecModel) -> List[ValidationIssue]:
    issues = []
    network = spec.network
    if not network.bridge.strip():
        issues.append(ValidationIssue("network.bridge", "must not be empty"))

    addressing = network.addressing
    if not isinstance(addressing, StaticAddressing):
        return issues

    interface = None
    if "/" not in addressing.cidr:
        issues.append(ValidationIssue("network.cidr", f"'{addressing.cidr}' is missing a prefix length"))
    else:
        try:
            interface = ipaddress.IPv4Interface(addressing.cidr)
        except ValueError:
            issues.append(ValidationIssue("network.cidr", f"'{addressing.cidr}' is not a valid IPv4 CIDR"))

    gateway = None
    try:
        gateway = ipaddress.IPv4Address(addressing.gateway)
    except ValueError:
        issues.append(ValidationIssue("network.gateway", f"'{addressing.gateway}' is not a valid IPv4 address"))

    if interface is not None and interface.network.prefixlen < 31:
        if interface.ip in (interface.network.network_address, interface.network.broadcast_address):
            issues.append(ValidationIssue("network.cidr", "host address is the network or broadcast address"))
    if interface is not None and gateway is not None:
        if gateway not in interface.network:
            issues.append(ValidationIssue("network.gateway", f"{gateway} is outside {interface.network}"))
        elif gateway == interface.ip:
            issues.append(ValidationIssue("network.gateway", "must differ from the container address"))
    return issues


def _check_credentials(spec: SpecModel) -> List[ValidationIssue]:
    issues = []
    if not spec.root_credential.get_secret_value():
        issues.append(ValidationIssue("root_credential", "must not be empty"))

    secrets = spec.application.secret_values()
    for key in REQUIRED_SECRETS:
        if not secrets.get(key):
            issues.append(ValidationIssue(f"application.secrets.{key}", "must be set"))
    for key, value in secrets.items():
        if not ENV_NAME_RE.match(key):
            issues.append(ValidationIssue(f"application.secrets.{key}", "is not a valid variable name"))
        if any(char in value for char in SECRET_FORBIDDEN_CHARS):
            issues.append(ValidationIssue(
                f"application.secrets.{key}", "contains a quote, backslash, $, backtick or newline"
            ))
    return issues


def _check_application(spec: SpecModel) -> List[ValidationIssue]:
    issues = []
    app = spec.application
    if not 1 <= app.port <= 65535:
        issues.append(ValidationIssue("application.port", "must be between 1 and 65535"))
    if app.num_workers <= 0:
        issues.append(ValidationIssue("application.num_workers", "must be a positive integer"))
    if not app.package.strip() or "'" in app.package:
        issues.append(ValidationIssue("application.package", "must be a non-empty pip requirement"))
    return issues


def collect_issues(spec: SpecModel, storage_pools: Optional[Sequence[str]] = None) -> List[ValidationIssue]:
    """Run every check and return all violations."""
    issues: List[ValidationIssue] = []
    if spec.container_id is not None and spec.container_id < 100:
        issues.append(ValidationIssue("container_id", "must be 100 or greater"))
    if not HOSTNAME_RE.match(spec.hostname):
        issues.append(ValidationIssue("hostname", f"'{spec.hostname}' is not a valid hostname"))
    if not spec.template.strip():
        issues.append(ValidationIssue("template", "must not be empty"))
    issues.extend(_check_resources(spec))
    issues.extend(_check_storage(spec, storage_pools))
    issues.extend(_check_network(spec))
    issues.extend(_check_credentials(spec))
    issues.extend(_check_application(spec))
    return issues


def validate_spec(spec: SpecModel, storage_pools: Optional[Sequence[str]] = None) -> None:
    """Validate a spec, raising SpecValidationError listing every issue.

    ``storage_pools`` is the list of pools accepting container root
    filesystems; when omitted, only the shape of ``storage_target`` is checked.
    """
    issues = collect_issues(spec, storage_pools)
    if issues:
        logger.error(f"Deployment spec has {len(issues)} validation issue(s)")
        raise SpecValidationError(issues)
