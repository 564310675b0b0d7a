from bbms.api.deps import Services, get_services
from bbms.api.routes import router

__all__ = ["Services", "get_services", "router"]
