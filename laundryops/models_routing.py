"""
Fleet and Delivery Route Models
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id


class Vehicle(Base):
    """Delivery vehicle owned by a business"""

    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    plate_number = Column(String(20), unique=True, nullable=False, index=True)
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)
    color = Column(String(50), nullable=True)

    # Capacity
    max_weight_kg = Column(Float, nullable=True)
    max_item_count = Column(Integer, nullable=True)
    max_volume_m3 = Column(Float, nullable=True)

    status = Column(String(20), default="AVAILABLE", nullable=False)  # see VehicleStatus
    assigned_driver_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    has_refrigeration = Column(Boolean, default=False, nullable=False)
    has_hanging_rack = Column(Boolean, default=False, nullable=False)

    fuel_type = Column(String(20), nullable=True)  # GASOLINE, DIESEL, LPG, ELECTRIC
    fuel_consumption_per_100km = Column(Float, nullable=True)
    cost_per_km = Column(Float, nullable=True)
    current_km = Column(Integer, default=0, nullable=False)

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    driver = relationship("User", foreign_keys=[assigned_driver_id])
    zone_links = relationship("VehicleDeliveryZone", back_populates="vehicle", cascade="all, delete-orphan")


class DeliveryZone(Base):
    """Geographic area a business serves"""

    __tablename__ = "delivery_zones"
    __table_args__ = (
        UniqueConstraint("business_id", "city", "district", name="uq_zone_business_city_district"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    neighborhood = Column(String(100), nullable=True)
    center_lat = Column(Float, nullable=True)
    center_lng = Column(Float, nullable=True)
    radius_km = Column(Float, nullable=True)
    priority = Column(Integer, default=1, nullable=False)  # 1 = highest, 5 = lowest
    service_start_time = Column(String(5), nullable=True)  # HH:MM
    service_end_time = Column(String(5), nullable=True)
    service_days = Column(String(50), nullable=True)  # comma separated weekday numbers, 1 = Monday
    delivery_fee = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vehicle_links = relationship("VehicleDeliveryZone", back_populates="zone", cascade="all, delete-orphan")

    @property
    def vehicle_ids(self):
        return [link.vehicle_id for link in self.vehicle_links]


class VehicleDeliveryZone(Base):
    __tablename__ = "vehicle_delivery_zones"
    __table_args__ = (UniqueConstraint("vehicle_id", "delivery_zone_id", name="uq_vehicle_zone"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    delivery_zone_id = Column(String(36), ForeignKey("delivery_zones.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    vehicle = relationship("Vehicle", back_populates="zone_links")
    zone = relationship("DeliveryZone", back_populates="vehicle_links")


class Route(Base):
    """A planned trip of one vehicle through ordered stops"""

    __tablename__ = "routes"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    route_name = Column(String(255), nullable=False)
    route_type = Column(String(20), default="MIXED", nullable=False)  # PICKUP_ONLY, DELIVERY_ONLY, MIXED, RETURN
    status = Column(String(20), default="PLANNED", nullable=False, index=True)  # see RouteStatus

    planned_date = Column(Date, nullable=False, index=True)
    planned_start_time = Column(DateTime, nullable=True)
    planned_end_time = Column(DateTime, nullable=True)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)

    total_distance = Column(Float, nullable=True)  # km
    estimated_duration = Column(Integer, nullable=True)  # minutes
    actual_duration = Column(Integer, nullable=True)  # minutes
    total_weight = Column(Float, default=0.0, nullable=False)  # kg
    total_items = Column(Integer, default=0, nullable=False)

    optimized_for = Column(String(20), default="distance", nullable=False)  # distance, time, priority
    notes = Column(Text, nullable=True)
    driver_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vehicle = relationship("Vehicle")
    stops = relationship(
        "RouteStop",
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteStop.sequence",
    )
    assignments = relationship("RouteAssignment", back_populates="route", cascade="all, delete-orphan")

    @property
    def stop_count(self):
        return len(self.stops)


class RouteStop(Base):
    __tablename__ = "route_stops"

    id = Column(String(36), primary_key=True, default=generate_id)
    route_id = Column(String(36), ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_zone_id = Column(String(36), ForeignKey("delivery_zones.id"), nullable=True)
    stop_type = Column(String(20), nullable=False)  # PICKUP, DELIVERY, DEPOT, BREAK
    sequence = Column(Integer, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # see StopStatus

    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    planned_arrival = Column(DateTime, nullable=True)
    planned_departure = Column(DateTime, nullable=True)
    actual_arrival = Column(DateTime, nullable=True)
    actual_departure = Column(DateTime, nullable=True)

    item_count = Column(Integer, default=0, nullable=False)
    weight = Column(Float, default=0.0, nullable=False)
    notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    route = relationship("Route", back_populates="stops")
    order_links = relationship("RouteStopOrder", back_populates="stop", cascade="all, delete-orphan")


class RouteStopOrder(Base):
    """Links an order to the stop where it is picked up or delivered"""

    __tablename__ = "route_stop_orders"
    __table_args__ = (UniqueConstraint("route_stop_id", "order_id", name="uq_stop_order"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    route_stop_id = Column(String(36), ForeignKey("route_stops.id", ondelete="CASCADE"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    action_type = Column(String(20), nullable=False)  # pickup, delivery
    sequence = Column(Integer, default=1, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    stop = relationship("RouteStop", back_populates="order_links")
    order = relationship("Order")


class RouteAssignment(Base):
    __tablename__ = "route_assignments"

    id = Column(String(36), primary_key=True, default=generate_id)
    route_id = Column(String(36), ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    status = Column(String(20), default="assigned", nullable=False)  # assigned, accepted, rejected, completed
    assigned_at = Column(DateTime, server_default=func.now())
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    route = relationship("Route", back_populates="assignments")
    driver = relationship("User", foreign_keys=[driver_id])


class VehicleTrackingLog(Base):
    """GPS position reported by a vehicle"""

    __tablename__ = "vehicle_tracking_logs"

    id = Column(String(36), primary_key=True, default=generate_id)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    route_id = Column(String(36), ForeignKey("routes.id", ondelete="SET NULL"), nullable=True, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # meters
    heading = Column(Float, nullable=True)  # degrees
    speed = Column(Float, nullable=True)  # km/h
    battery_level = Column(Integer, nullable=True)  # percent
    status = Column(String(20), nullable=True)  # MOVING, STOPPED, IDLE
    timestamp = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
