from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import Column, JSON, Enum as SAEnum, Text
from sqlmodel import SQLModel, Field

from gatsishub.models.common import UTCDateTime, utcnow, new_order_id, enum_values


class OrderStatus(str, Enum):
    FOR_EVALUATION = "For Evaluation"
    CONTRACT_SIGNING = "Contract Signing"
    WAITING_FOR_PAYMENT = "Waiting for Payment"
    VERIFYING_PAYMENT = "Verifying Payment"
    IN_PRODUCTION = "In Production"
    WAITING_FOR_SHIPMENT = "Waiting for Shipment"
    IN_TRANSIT = "In Transit"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: str = Field(default_factory=new_order_id, primary_key=True)
    customer_id: Optional[str] = Field(default=None, index=True)

    company_name: str
    contact_person: str
    contact_phone: str
    hanger_type: str
    material_type: Optional[str] = None
    quantity: int
    # material name -> percentage of the hanger's weight
    materials: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # customization
    design_option: str = "default"
    selected_color: Optional[str] = None
    custom_text: Optional[str] = None
    text_color: str = "#000000"
    text_position: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    text_size: Optional[float] = None
    custom_logo: Optional[str] = Field(default=None, sa_column=Column(Text))
    logo_position: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    logo_size: Optional[float] = None
    design_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    delivery_notes: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_country: str = "PH"

    total_price: Optional[float] = None
    estimated_breakdown: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    final_breakdown: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    deadline: Optional[date] = None

    status: OrderStatus = Field(
        default=OrderStatus.FOR_EVALUATION,
        sa_column=Column(
            SAEnum(
                OrderStatus,
                name="order_status",
                native_enum=False,
                values_callable=enum_values,
                validate_strings=True,
                length=32,
            ),
            nullable=False,
            index=True,
        ),
    )
    contract_signed: bool = False
    contract_signed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    contract_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    requires_contract_amendment: bool = False
    tracking_link: Optional[str] = None
    sales_admin_id: Optional[int] = None

    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class OrderLog(SQLModel, table=True):
    __tablename__ = "order_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(index=True)
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    action: str
    field_changed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
