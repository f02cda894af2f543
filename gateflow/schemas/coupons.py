# -*- coding: utf-8 -*-
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class VerifyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    product_id: str = Field(..., min_length=1, max_length=36)
    email: Optional[EmailStr] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)


class CreateCouponRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=64, pattern=r'^[A-Za-z0-9_-]+$')
    name: Optional[str] = Field(default=None, max_length=255)
    discount_type: Literal['percentage', 'fixed']
    discount_value: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    allowed_emails: List[EmailStr] = Field(default_factory=list)
    allowed_product_ids: List[str] = Field(default_factory=list)
    exclude_order_bumps: bool = False
    usage_limit_global: Optional[int] = Field(default=None, gt=0)
    usage_limit_per_user: Optional[int] = Field(default=1, gt=0)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True

    @model_validator(mode='after')
    def check_discount(self):
        if self.discount_type == 'percentage' and self.discount_value > 100:
            raise ValueError('Percentage discount cannot exceed 100')
        if self.discount_type == 'fixed' and not self.currency:
            raise ValueError('Fixed discounts require a currency')
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError('expires_at must be after starts_at')
        return self
