"""
Pydantic schemas for request/response validation in the Storefront service.

These schemas define the structure of data for API requests and responses.
JSON keys are camelCase (``deliverySlot``, ``lineTotal``); Python attributes
stay snake_case and either spelling is accepted on input.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

PHONE_PATTERN = r"^\d{10,15}$"
PINCODE_PATTERN = r"^\d{6}$"


class CamelModel(BaseModel):
    """Base schema: camelCase aliases, readable from ORM objects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---- Shared sub-documents -------------------------------------------------

class Address(CamelModel):
    """Delivery address shared by users and orders. Every field is optional."""
    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN, description="10-15 digits")
    address: Optional[str] = None
    landmark: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = Field(default=None, pattern=PINCODE_PATTERN, description="6 digits")
    type: Optional[str] = None
    default: bool = False


class LineItem(CamelModel):
    """Schema for a cart or order line item."""
    product_id: Optional[str] = None
    name: Optional[str] = None
    price: float = Field(..., ge=0, description="Price per unit")
    quantity: float = Field(default=1, gt=0, validation_alias=AliasChoices("quantity", "qty"), description="Quantity ordered")
    measure: float = Field(default=1, ge=0)
    unit: str = "kg"
    image: Optional[str] = None
    line_total: Optional[float] = Field(default=None, ge=0)


class Pricing(CamelModel):
    subtotal: Optional[float] = None
    discount: Optional[float] = None
    delivery_fee: Optional[float] = None
    tax: Optional[float] = None
    total: Optional[float] = None
    coupon: Optional[str] = None


class PaymentInfo(CamelModel):
    """Payment descriptor recorded on an order; card data is masked to the last 4 digits."""
    method: Optional[str] = None
    payment_id: Optional[str] = None
    status: Optional[str] = None
    upi_id: Optional[str] = None
    card_last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")


class CreatedId(BaseModel):
    id: str


# ---- Orders ---------------------------------------------------------------

class OrderCreate(CamelModel):
    """Schema for placing an order from the caller's cart."""
    items: List[LineItem] = Field(..., min_length=1, description="Order line items")
    pricing: Pricing = Field(default_factory=Pricing)
    delivery_slot: Optional[str] = None
    payment: PaymentInfo = Field(default_factory=PaymentInfo)
    address: Address = Field(default_factory=Address)


class Order(CamelModel):
    """
    Schema for order responses.

    Attributes:
        id (str): Order's unique identifier
        items (List[LineItem]): Order line items
        pricing (Pricing): Pricing summary
        delivery_slot (str): Delivery slot label
        payment (PaymentInfo): Payment descriptor
        address (Address): Shipping address snapshot
        status (str): processing, shipped or delivered
        created_at (datetime): When the order was created
    """
    id: str
    items: List[LineItem] = []
    pricing: Pricing = Field(default_factory=Pricing)
    delivery_slot: Optional[str] = None
    payment: PaymentInfo = Field(default_factory=PaymentInfo)
    address: Address = Field(default_factory=Address)
    status: str
    created_at: datetime


class OrderList(BaseModel):
    orders: List[Order]


class OrderOwner(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class AdminOrder(Order):
    user: Optional[OrderOwner] = None
    updated_at: Optional[datetime] = None


class AdminOrderList(BaseModel):
    orders: List[AdminOrder]


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None


class OrderStatus(BaseModel):
    id: str
    status: str


class OrderEvent(CamelModel):
    """
    Schema for order timeline events.

    Attributes:
        id (int): Event ID
        order_id (str): Order identifier
        event_type (str): Type of event (created, status_changed)
        description (str): Human-readable event description
        old_value (str): Previous value (optional)
        new_value (str): New value (optional)
        user_id (str): User who triggered the event (optional)
        created_at (datetime): When the event occurred
    """
    id: int
    order_id: str
    event_type: str
    description: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime


# ---- Sales ----------------------------------------------------------------

class SaleItem(CamelModel):
    product_id: Optional[str] = None
    name: Optional[str] = None
    price: float = Field(default=0, ge=0)
    quantity: float = Field(default=1, gt=0)
    line_total: Optional[float] = Field(default=None, ge=0)


class SaleCreate(CamelModel):
    """Schema for recording a sale by hand. Amounts are passed through as given."""
    items: List[SaleItem] = Field(default_factory=list)
    subtotal: float = Field(default=0, ge=0)
    tax: float = Field(default=0, ge=0)
    tax_rate: float = Field(default=0, ge=0)
    total: float = Field(default=0, ge=0)
    source: Literal["order", "admin", "other"] = "admin"
    order_ref: Optional[str] = None
    note: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class Sale(CamelModel):
    id: str
    items: List[SaleItem] = []
    subtotal: float
    tax: float
    tax_rate: float
    total: float
    source: str
    order_ref: Optional[str] = None
    created_by: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class SaleList(BaseModel):
    sales: List[Sale]


class ReconcileResult(BaseModel):
    recorded: int
    failed: int


# ---- Payments -------------------------------------------------------------

class GatewayOrderCreate(BaseModel):
    """Amount is expressed in the smallest currency unit (paise for INR)."""
    amount: Optional[int] = None
    currency: str = "INR"
    receipt: Optional[str] = None


class PaymentVerification(BaseModel):
    """Gateway callback fields. Non-string values are compared as their string form."""
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None

    @field_validator("razorpay_order_id", "razorpay_payment_id", "razorpay_signature", mode="before")
    @classmethod
    def as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


class VerificationResult(BaseModel):
    valid: bool


class GatewayStatus(BaseModel):
    configured: bool


# ---- Users ----------------------------------------------------------------

class UserSettings(CamelModel):
    theme_mode: Literal["light", "dark", "system"] = "system"
    accent_color: Optional[str] = None


class UserRegister(BaseModel):
    """Schema for user registration with password."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class User(CamelModel):
    """Public view of an account, never includes the password hash."""
    id: str
    name: str
    email: str
    role: str
    phone: Optional[str] = None


class AuthResult(BaseModel):
    token: str
    user: User


class UserProfile(User):
    cart: List[LineItem] = []
    favorites: List[str] = []
    address: Optional[Address] = None
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: datetime


class UserDetail(BaseModel):
    user: UserProfile
    orders: List[Order]


class UserProfileEnvelope(BaseModel):
    user: UserProfile


class UserList(BaseModel):
    users: List[UserProfile]


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class CartUpdate(BaseModel):
    cart: List[LineItem]


class FavoritesUpdate(BaseModel):
    favorites: List[str]


class AddressUpdate(BaseModel):
    address: Optional[Address] = None


class SettingsUpdate(BaseModel):
    settings: Dict[str, Any] = Field(default_factory=dict)


class ProfileResult(BaseModel):
    ok: bool = True
    user: UserProfile


class CartResult(BaseModel):
    ok: bool = True
    cart: List[LineItem]


class FavoritesResult(BaseModel):
    ok: bool = True
    favorites: List[str]


class AddressResult(BaseModel):
    ok: bool = True
    address: Optional[Address] = None


class SettingsResult(BaseModel):
    ok: bool = True
    settings: UserSettings


class RoleUpdate(BaseModel):
    role: Optional[str] = None


class PromotionResult(BaseModel):
    promoted: List[str]


# ---- Products -------------------------------------------------------------

class ProductBase(CamelModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    unit: str = "kg"
    stock: int = Field(default=0, ge=0)
    image: Optional[str] = None
    description: Optional[str] = None
    active: bool = True
    rating: float = Field(default=0, ge=0, le=5)
    discount: float = Field(default=0, ge=0, le=100)
    sold: int = Field(default=0, ge=0)
    is_featured: bool = False
    default_measure: float = Field(default=1, ge=0)

    @field_validator("name", "category", "unit", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ProductCreate(ProductBase):
    pass


class ProductUpdate(CamelModel):
    """Schema for updating a product. All fields are optional."""
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    price: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    sold: Optional[int] = Field(default=None, ge=0)
    is_featured: Optional[bool] = None
    default_measure: Optional[float] = Field(default=None, ge=0)


class Product(ProductBase):
    id: str
    added_at: datetime
    created_at: datetime


class ProductList(BaseModel):
    products: List[Product]


class ProductEnvelope(BaseModel):
    product: Product


class ProductCreated(BaseModel):
    id: str
    product: Product


class ProductStats(CamelModel):
    total_products: int
    featured_count: int
    on_sale_count: int
    avg_rating: float
    total_sold: int
