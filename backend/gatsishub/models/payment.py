from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Enum as SAEnum
from sqlmodel import SQLModel, Field

from gatsishub.models.common import UTCDateTime, utcnow, enum_values


class PaymentStatus(str, Enum):
    PENDING = "Pending Verification"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(index=True)
    customer_id: Optional[str] = Field(default=None, index=True)
    payment_method: str
    proof_of_payment: str
    status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
        sa_column=Column(
            SAEnum(
                PaymentStatus,
                name="payment_status",
                native_enum=False,
                values_callable=enum_values,
                validate_strings=True,
                length=32,
            ),
            nullable=False,
            index=True,
        ),
    )
    amount_paid: Optional[float] = None
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    verified_by: Optional[int] = None
    submitted_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    verified_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
