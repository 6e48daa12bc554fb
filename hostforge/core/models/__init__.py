"""Domain models — pydantic value objects shared across services."""

from hostforge.core.models.component import ComponentCategory, ComponentDescriptor
from hostforge.core.models.credentials import CredentialInstance, CredentialRecord
from hostforge.core.models.result import Issue, IssueLog, OperationResult, Severity, StackReport
from hostforge.core.models.stacks import (
    DatabaseStackConfig,
    DbSecurityOptions,
    DnsStackConfig,
    MailStackConfig,
)
from hostforge.core.models.status import (
    DatabaseInfo,
    HostStatus,
    RuntimeInfo,
    ServiceInfo,
    SystemInfo,
)

__all__ = [
    "ComponentCategory",
    "ComponentDescriptor",
    "CredentialInstance",
    "CredentialRecord",
    "DatabaseInfo",
    "DatabaseStackConfig",
    "DbSecurityOptions",
    "DnsStackConfig",
    "HostStatus",
    "Issue",
    "IssueLog",
    "MailStackConfig",
    "OperationResult",
    "RuntimeInfo",
    "ServiceInfo",
    "Severity",
    "StackReport",
    "SystemInfo",
]
