from bbms.crud.crud_alert import alert_crud
from bbms.crud.crud_limit import limit_crud

__all__ = ["alert_crud", "limit_crud"]
