"""Pydantic models for the backend's JSON payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ridesync.domain.entities import HistoryPage, Location, Order, OrderRequest
from ridesync.domain.enums import OrderStatus


class LocationPayload(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str = ""
    name: Optional[str] = None

    def to_entity(self) -> Location:
        return Location(self.latitude, self.longitude, self.address, self.name)

    @classmethod
    def from_entity(cls, location: Location) -> LocationPayload:
        return cls(
            latitude=location.latitude,
            longitude=location.longitude,
            address=location.address,
            name=location.name,
        )


class OrderPayload(BaseModel):
    id: str
    status: OrderStatus
    pickup_location: LocationPayload
    destination: Optional[LocationPayload] = None
    scheduled_time: Optional[datetime] = None
    passenger_count: int = 1
    luggage_count: int = 0
    service_options: list[str] = []
    driver_id: Optional[str] = None
    version: int = 0
    estimated_price: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_entity(self) -> Order:
        return Order(
            id=self.id,
            status=self.status,
            pickup=self.pickup_location.to_entity(),
            destination=self.destination.to_entity() if self.destination else None,
            scheduled_time=self.scheduled_time,
            passenger_count=self.passenger_count,
            luggage_count=self.luggage_count,
            service_options=frozenset(self.service_options),
            driver_id=self.driver_id,
            version=self.version,
            estimated_price=self.estimated_price,
            notes=self.notes,
            created_at=self.created_at,
        )

    @classmethod
    def from_entity(cls, order: Order) -> OrderPayload:
        return cls(
            id=order.id,
            status=order.status,
            pickup_location=LocationPayload.from_entity(order.pickup),
            destination=(
                LocationPayload.from_entity(order.destination)
                if order.destination else None
            ),
            scheduled_time=order.scheduled_time,
            passenger_count=order.passenger_count,
            luggage_count=order.luggage_count,
            service_options=sorted(order.service_options),
            driver_id=order.driver_id,
            version=order.version,
            estimated_price=order.estimated_price,
            notes=order.notes,
            created_at=order.created_at,
        )


class OrderRequestPayload(BaseModel):
    pickup_location: LocationPayload
    destination: Optional[LocationPayload] = None
    scheduled_time: Optional[datetime] = None
    passenger_count: int = Field(1, ge=1, le=8)
    luggage_count: int = Field(0, ge=0, le=10)
    service_options: list[str] = []
    notes: Optional[str] = None

    def to_entity(self) -> OrderRequest:
        return OrderRequest(
            pickup=self.pickup_location.to_entity(),
            destination=self.destination.to_entity() if self.destination else None,
            scheduled_time=self.scheduled_time,
            passenger_count=self.passenger_count,
            luggage_count=self.luggage_count,
            service_options=frozenset(self.service_options),
            notes=self.notes,
        )

    @classmethod
    def from_entity(cls, request: OrderRequest) -> OrderRequestPayload:
        return cls(
            pickup_location=LocationPayload.from_entity(request.pickup),
            destination=(
                LocationPayload.from_entity(request.destination)
                if request.destination else None
            ),
            scheduled_time=request.scheduled_time,
            passenger_count=request.passenger_count,
            luggage_count=request.luggage_count,
            service_options=sorted(request.service_options),
            notes=request.notes,
        )


class HistoryPayload(BaseModel):
    orders: list[OrderPayload] = []
    next_cursor: Optional[str] = None
    has_more: bool = False

    def to_entity(self) -> HistoryPage:
        return HistoryPage(
            orders=tuple(o.to_entity() for o in self.orders),
            next_cursor=self.next_cursor,
            has_more=self.has_more,
        )


class StatusUpdatePayload(BaseModel):
    status: OrderStatus


class CancelPayload(BaseModel):
    reason: Optional[str] = None


class GrabPayload(BaseModel):
    order_id: str
    driver_id: str


class DriverStatusPayload(BaseModel):
    is_online: bool
