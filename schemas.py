from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Collection: orders
class OrderDraft(CamelModel):
    """Order submission as received; presence of mandatory fields is checked by the store."""

    product_id: Optional[str] = Field(None, description="Product identifier")
    product_name: Optional[str] = Field(None, description="Product name")
    image: Optional[str] = Field(None, description="Image URL")
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="Unit price, currency agnostic")
    user_email: Optional[str] = Field(None, description="Purchaser email")
    quantity: Optional[int] = Field(None, gt=0)


class Order(CamelModel):
    id: str
    product_id: str
    product_name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0, allow_inf_nan=False)
    user_id: Optional[str] = None
    user_email: str
    quantity: int = 1
    created_at: datetime


# Notification outcome, never persisted
class NotificationOutcome(BaseModel):
    status: str = Field(..., description="sent or failed")
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"


class OrderCreated(BaseModel):
    message: str
    order: Order
    notification: NotificationOutcome


class OrderCancelled(BaseModel):
    message: str
    notification: NotificationOutcome


# Collection: users
class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return value


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(CamelModel):
    id: str
    name: Optional[str] = None
    email: str
    created_at: Optional[datetime] = None


class AuthOut(BaseModel):
    message: str
    token: str
    user: UserOut


# Mail endpoints
class SellerApplication(CamelModel):
    name: str
    shop_name: str
    email: EmailStr
    phone: str
    description: str


class AdminMailIn(BaseModel):
    to: EmailStr
    subject: str
    message: str


class MessageOut(BaseModel):
    message: str


class HealthOut(BaseModel):
    backend: str
    database: str
    collections: List[str] = []
