from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from gatsishub.models.common import UTCDateTime, utcnow


class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    description: Optional[str] = None
    image_url: Optional[str] = None
    model_url: Optional[str] = None
    # grams per unit, drives shipment weight and material cost
    weight: Optional[float] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Material(SQLModel, table=True):
    __tablename__ = "materials"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    price_per_kg: Optional[float] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
