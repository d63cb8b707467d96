from pydantic import BaseModel


class RouteInfo(BaseModel):
    from_pincode: str
    to_pincode: str
    duration_hours: float
    distance_km: int
    cost: int
    route_label: str
