# -*- coding: utf-8 -*-
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class CreateOrderBumpRequest(BaseModel):
    main_product_id: str = Field(..., min_length=1, max_length=36)
    bump_product_id: str = Field(..., min_length=1, max_length=36)
    bump_title: str = Field(..., min_length=1, max_length=255)
    bump_description: Optional[str] = Field(default=None, max_length=1000)
    bump_price: Optional[Decimal] = Field(default=None, ge=0)
    access_duration_days: Optional[int] = Field(default=None, ge=0)
    display_order: int = 0
    is_active: bool = True

    @model_validator(mode='after')
    def check_not_self(self):
        if self.main_product_id == self.bump_product_id:
            raise ValueError('A product cannot be its own order bump')
        return self
