# Virtual accounts module
from quickfund.modules.accounts.models import VirtualAccount

__all__ = ["VirtualAccount"]
