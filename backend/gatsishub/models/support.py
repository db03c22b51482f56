from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Text
from sqlmodel import SQLModel, Field

from gatsishub.models.common import UTCDateTime, utcnow

SENDER_CUSTOMER = "customer"
SENDER_ADMIN = "admin"


class Feedback(SQLModel, table=True):
    __tablename__ = "feedback"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: str = Field(index=True)
    # one rating per order, enforced by the store
    order_id: str = Field(unique=True, index=True)
    message: str
    rating: int
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: str = Field(index=True)
    employee_id: Optional[int] = Field(default=None, index=True)
    message: str = Field(sa_column=Column(Text, nullable=False))
    sender_type: str = SENDER_CUSTOMER
    # data URL of an optional attachment
    attachment: Optional[str] = Field(default=None, sa_column=Column(Text))
    attachment_name: Optional[str] = None
    time_sent: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
