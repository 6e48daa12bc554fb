"""Multi-phase stack workflows (mail, DNS, database)."""

from hostforge.core.services.stacks.base import Stack
from hostforge.core.services.stacks.database import DatabaseStack
from hostforge.core.services.stacks.dns import DnsStack
from hostforge.core.services.stacks.mail import MailStack

STACKS: dict[str, type[Stack]] = {
    "mail": MailStack,
    "dns": DnsStack,
    "database": DatabaseStack,
}

__all__ = ["Stack", "MailStack", "DnsStack", "DatabaseStack", "STACKS"]
