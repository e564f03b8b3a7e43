# Admin module
from quickfund.modules.admin.router import router

__all__ = ["router"]
