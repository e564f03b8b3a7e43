# Users module
from quickfund.modules.users.models import User, EmploymentStatus

__all__ = ["User", "EmploymentStatus"]
