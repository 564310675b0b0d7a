from pydantic import BaseModel


class LimitIn(BaseModel):
    value: float


class LimitOut(BaseModel):
    device_id: str
    value: float
    critical_value: float
