# -*- coding: utf-8 -*-
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class CreateCheckoutSessionRequest(BaseModel):
    """Body of POST /api/checkout/create-session."""
    product_id: str = Field(..., min_length=1, max_length=36)
    email: Optional[EmailStr] = None
    bump_product_id: Optional[str] = Field(default=None, max_length=36)
    coupon_code: Optional[str] = Field(default=None, max_length=64)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def strip_names(cls, v):
        return v.strip() or None if v is not None else v


class RefundRequest(BaseModel):
    """Body of POST /api/v1/payments/<id>/refund. Amount in minor units; omitted = full refund."""
    amount: Optional[int] = Field(default=None, gt=0)
    reason: Optional[str] = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if v is not None and v not in ('duplicate', 'fraudulent', 'requested_by_customer'):
            raise ValueError('reason must be duplicate, fraudulent or requested_by_customer')
        return v
