from bbms.models.alert import Alert
from bbms.models.temperature_limit import AUTHORITATIVE, LOCAL_BACKUP, TemperatureLimit

__all__ = ["AUTHORITATIVE", "Alert", "LOCAL_BACKUP", "TemperatureLimit"]
