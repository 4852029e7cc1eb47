"""
Database and API schemas for the farm marketplace

Each stored model represents a collection in the database. The model name
lowercased is the collection name:
- User -> "user"
- Product -> "product"
- Order -> "order"

Attributes are snake_case in Python and camelCase on the wire and in the
store (``farmer_email`` <-> ``farmerEmail``).
"""
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

COMMISSION_RATE = 0.015
# Stripe caps a single PaymentIntent at 99,999,999 minor units
MAX_ORDER_AMOUNT = 999_999.99

RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Role = Literal["buyer", "farmer"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def commission_for(total_amount: float) -> float:
    return round(total_amount * COMMISSION_RATE, 2)


# Stored documents

class User(CamelModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Login email, unique")
    phone: str = Field(..., description="Contact phone number")
    password: str = Field(..., description="bcrypt hash of the password")
    role: Role = Field(..., description="buyer | farmer")


class Product(CamelModel):
    farmer_email: str = Field(..., description="Email of the farmer who listed it")
    name: str = Field(..., description="Product name")
    category: str = Field(..., description="Product category")
    quantity: float = Field(..., gt=0, description="Quantity available")
    price: float = Field(..., gt=0, description="Unit price in rupees")


class Order(CamelModel):
    buyer_email: str = Field(..., description="Email of the buyer")
    items: List[Any] = Field(..., description="Line items as sent by the client")
    total_amount: float = Field(..., ge=0, description="Order total in rupees")
    commission: float = Field(..., ge=0, description="Platform commission on the total")
    payment_id: str = Field(..., description="Stripe PaymentIntent id")


# Requests

class RegisterRequest(CamelModel):
    name: RequiredStr
    email: RequiredStr
    phone: RequiredStr
    password: Annotated[str, Field(min_length=1)]
    role: Role


class LoginRequest(CamelModel):
    email: RequiredStr
    password: Annotated[str, Field(min_length=1)]
    role: RequiredStr


class ProductIn(CamelModel):
    name: RequiredStr
    category: RequiredStr
    quantity: float = Field(..., gt=0)
    price: float = Field(..., gt=0)
    farmer_email: RequiredStr


class ProductUpdate(CamelModel):
    name: Optional[RequiredStr] = None
    category: Optional[RequiredStr] = None
    quantity: Optional[float] = Field(None, gt=0)
    price: Optional[float] = Field(None, gt=0)


class CreateOrderRequest(CamelModel):
    total_amount: float = Field(..., gt=0, le=MAX_ORDER_AMOUNT, allow_inf_nan=False)


class RecordOrderRequest(CamelModel):
    buyer_email: RequiredStr
    items: List[Any] = Field(..., min_length=1)
    total_amount: float = Field(..., gt=0, le=MAX_ORDER_AMOUNT, allow_inf_nan=False)
    payment_id: RequiredStr


# Responses

class ProductOut(CamelModel):
    id: str
    farmer_email: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None


class LoginResponse(BaseModel):
    success: bool = True
    role: str
    name: str


class AdminReport(CamelModel):
    total_orders: int
    total_sales: float
    total_commission: float
