"""
Storefront API

This module implements the FastAPI application for the storefront backend:
accounts, catalogue, cart/favorites, order placement, sale recording and
payment verification, guarded by role-based access control.

Endpoints (all under /api):
    GET  /health: Service health
    /auth/*: Registration and login
    /user/*: Profile, cart, favorites, address and settings of the caller
    /products/*: Public catalogue
    /orders: Place and list the caller's orders
    /sales: Record sales, list them (admin)
    /payments/razorpay/*: Gateway order creation and signature verification
    /admin/*: Catalogue, order, user and sale administration

Attributes:
    app (FastAPI): The FastAPI application instance
"""
from contextlib import asynccontextmanager
import logging
import time
from typing import Any, List, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import auth, checkout, crud, models, schemas, validators
from .clients import razorpay_client
from .config import Settings, get_settings
from .database import engine, get_db
from .errors import (
    AlreadyExists,
    ConfigMissing,
    InvalidPayload,
    MissingFields,
    NotFound,
    from_validation_error,
    register_exception_handlers,
)
from .payments import RazorpayConfig, get_razorpay_config, verify_payment_signature

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)

    gateway = RazorpayConfig.from_settings(settings)
    if gateway.configured:
        logger.info(f"Razorpay keys detected (key: {gateway.masked_key_id})")
    else:
        logger.warning("Razorpay keys missing. Payment endpoints will report configured: false")
    if not settings.JWT_SECRET:
        logger.warning("JWT_SECRET missing. Login and protected endpoints will fail")
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


@app.get("/api/health", response_model=dict)
def health(settings: Settings = Depends(get_settings)):
    """
    Health check endpoint used by the mobile app for diagnostics.

    Returns:
        dict: ok flag, server timestamp in milliseconds and environment name
    """
    return {"ok": True, "ts": int(time.time() * 1000), "env": settings.APP_ENV}


# ---- Auth -----------------------------------------------------------------

@app.get("/api/auth/ping", response_model=dict)
def auth_ping():
    return {"ok": True, "message": "Auth routes alive"}


@app.post("/api/auth/register", response_model=schemas.AuthResult, status_code=status.HTTP_201_CREATED)
def register(
    user: schemas.UserRegister,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new user account.

    New accounts always get the ``user`` role; admins are promoted explicitly.

    Args:
        user: Registration data (name, email, password)
        db: Database session (injected)
        settings: Service settings (injected)

    Returns:
        JWT token and the public user record

    Raises:
        AlreadyExists: 400 if the email is already registered
        ConfigMissing: 500 if no JWT secret is configured
    """
    if not settings.JWT_SECRET:
        raise ConfigMissing("Server config error: JWT secret missing", code="CONFIG_JWT_SECRET_MISSING")

    if crud.get_user_by_email(db, user.email):
        logger.info(f"Registration failed: user exists: {user.email}")
        raise AlreadyExists("User already exists", code="USER_EXISTS")

    db_user = crud.create_user(db, user.name, user.email, auth.get_password_hash(user.password))
    logger.info(f"User registered: {db_user.email}")
    return {"token": auth.token_for(db_user, settings), "user": db_user}


@app.post("/api/auth/login", response_model=schemas.AuthResult)
def login(
    credentials: schemas.UserLogin,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Authenticate and login a user.

    Raises:
        InvalidPayload: 400 if the credentials are invalid
        ConfigMissing: 500 if no JWT secret is configured
    """
    user = auth.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise InvalidPayload("Invalid credentials", code="INVALID_CREDENTIALS")

    token = auth.token_for(user, settings)
    logger.info(f"User logged in: {user.email}")
    return {"token": token, "user": user}


# ---- Current user data ----------------------------------------------------

@app.get("/api/user/me", response_model=schemas.UserProfileEnvelope)
def get_me(current_user: models.User = Depends(auth.get_current_user)):
    """Profile, cart and favorites of the caller."""
    return {"user": current_user}


@app.put("/api/user/profile", response_model=schemas.ProfileResult)
def update_profile(
    profile: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """Update name and/or phone. Omitted fields are left unchanged."""
    user = crud.update_user_fields(db, current_user, name=profile.name, phone=profile.phone)
    return {"ok": True, "user": user}


@app.put("/api/user/cart", response_model=schemas.CartResult)
def replace_cart(
    body: schemas.CartUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    cart = [item.model_dump(by_alias=True, exclude_none=True) for item in body.cart]
    user = crud.update_user_fields(db, current_user, cart=cart)
    return {"ok": True, "cart": user.cart}


@app.put("/api/user/favorites", response_model=schemas.FavoritesResult)
def replace_favorites(
    body: schemas.FavoritesUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    user = crud.update_user_fields(db, current_user, favorites=list(body.favorites))
    return {"ok": True, "favorites": user.favorites}


@app.put("/api/user/address", response_model=schemas.AddressResult)
def update_address(
    body: schemas.AddressUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """Replace the saved address. A missing address clears it to an empty one."""
    address = body.address or schemas.Address()
    user = crud.update_user_fields(
        db, current_user, address=address.model_dump(by_alias=True, exclude_none=True)
    )
    return {"ok": True, "address": user.address}


@app.put("/api/user/settings", response_model=schemas.SettingsResult)
def update_settings(
    body: schemas.SettingsUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Merge the given settings into the stored ones.

    Raises:
        InvalidPayload: 400 if the merged settings are invalid (e.g. unknown themeMode)
    """
    merged = {**(current_user.settings or {}), **body.settings}
    try:
        new_settings = schemas.UserSettings.model_validate(merged)
    except ValidationError as e:
        raise from_validation_error(e)
    user = crud.update_user_fields(
        db, current_user, settings=new_settings.model_dump(by_alias=True, exclude_none=True)
    )
    return {"ok": True, "settings": user.settings}


# ---- Catalogue ------------------------------------------------------------

@app.get("/api/products", response_model=schemas.ProductList)
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    limit: Optional[int] = None,
    sort: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Public catalogue of active products.

    Args:
        category: Exact category filter
        search: Case-insensitive name search
        limit: Page size (capped at 200, 0 or missing means all)
        sort: price_asc, price_desc, newest (default) or oldest
    """
    if sort not in validators.PRODUCT_SORTS:
        sort = "newest"
    products = crud.get_products(
        db,
        category=category,
        search=search,
        sort=sort,
        limit=validators.normalize_catalogue_limit(limit),
    )
    return {"products": products}


@app.get("/api/products/trending", response_model=schemas.ProductList)
def trending_products(limit: Optional[int] = None, db: Session = Depends(get_db)):
    """Best sellers first, then best rated."""
    return {"products": crud.get_trending_products(db, validators.normalize_highlight_limit(limit))}


@app.get("/api/products/offers", response_model=schemas.ProductList)
def offer_products(limit: Optional[int] = None, db: Session = Depends(get_db)):
    return {"products": crud.get_offer_products(db, validators.normalize_highlight_limit(limit))}


@app.get("/api/products/featured", response_model=schemas.ProductList)
def featured_products(limit: Optional[int] = None, db: Session = Depends(get_db)):
    return {"products": crud.get_featured_products(db, validators.normalize_highlight_limit(limit))}


@app.get("/api/products/stats/overview", response_model=schemas.ProductStats)
def product_stats(db: Session = Depends(get_db)):
    return crud.get_product_stats(db)


@app.get("/api/products/{product_id}", response_model=schemas.ProductEnvelope)
def get_product(product_id: str, db: Session = Depends(get_db)):
    """
    Get a single product by ID.

    Raises:
        NotFound: 404 if the product does not exist
    """
    product = crud.get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")
    return {"product": product}


# ---- Orders ---------------------------------------------------------------

@app.get("/api/orders", response_model=schemas.OrderList)
def list_my_orders(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    List the caller's orders, newest first.

    Args:
        db: Database session (injected)
        current_user: Current authenticated user (injected)

    Returns:
        {"orders": [...]}
    """
    return {"orders": crud.get_orders_for_user(db, current_user.id)}


@app.post("/api/orders", response_model=schemas.CreatedId, status_code=status.HTTP_201_CREATED)
def create_order(
    order: Any = Body(default=None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Place an order for the caller.

    The order is saved first; its sale record is written afterwards on a
    best-effort basis and never affects this response.

    Args:
        order: Order data (at least one item), validated by checkout
        db: Database session (injected)
        current_user: Current authenticated user (injected)

    Returns:
        {"id": order_id}

    Raises:
        InvalidOrderPayload: 400 if validation fails
        PersistenceFailure: 500 if the order cannot be saved
    """
    order_id = checkout.place_order(db, current_user.id, order)
    return {"id": order_id}


# ---- Sales ----------------------------------------------------------------

@app.post("/api/sales", response_model=schemas.CreatedId, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale: schemas.SaleCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """Record a sale by hand (any authenticated user)."""
    db_sale = checkout.record_sale(db, sale, current_user.id)
    return {"id": db_sale.id}


@app.get("/api/sales", response_model=schemas.SaleList)
def list_sales(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """List all sales, newest first (admin only)."""
    return {"sales": crud.get_sales(db)}


# ---- Payments -------------------------------------------------------------

@app.post("/api/payments/razorpay/create-order", response_model=dict)
async def create_gateway_order(
    body: schemas.GatewayOrderCreate,
    config: RazorpayConfig = Depends(get_razorpay_config)
):
    """
    Create a Razorpay order (amount in paise).

    Raises:
        InvalidPayload: 400 if the amount is missing or not positive
        ConfigMissing: 500 if the gateway keys are not configured
        GatewayError: 500 if Razorpay rejects the request
    """
    return await razorpay_client.create_order(
        config, amount=body.amount, currency=body.currency, receipt=body.receipt
    )


@app.post("/api/payments/razorpay/verify", response_model=schemas.VerificationResult)
def verify_gateway_payment(
    body: schemas.PaymentVerification,
    config: RazorpayConfig = Depends(get_razorpay_config)
):
    """
    Verify the signature of a Razorpay payment callback.

    Returns:
        {"valid": true} when the signature matches; 400 with
        {"valid": false, ...} on mismatch or missing fields

    Raises:
        ConfigMissing: 500 if the key secret is not configured
    """
    try:
        valid = verify_payment_signature(
            body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature, config
        )
    except MissingFields as e:
        return JSONResponse(status_code=e.status_code, content={"valid": False, **e.to_dict()})

    if not valid:
        logger.warning(f"Invalid Razorpay signature for order {body.razorpay_order_id}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "message": "Invalid signature", "code": "INVALID_SIGNATURE"},
        )
    return {"valid": True}


@app.get("/api/payments/razorpay/health", response_model=schemas.GatewayStatus)
def gateway_status(config: RazorpayConfig = Depends(get_razorpay_config)):
    """Report only whether the gateway is configured."""
    return {"configured": config.configured}


# ---- Admin ----------------------------------------------------------------

@app.get("/api/admin/ping", response_model=dict)
def admin_ping(current_user: models.User = Depends(auth.require_admin)):
    return {"ok": True}


@app.get("/api/admin/products", response_model=schemas.ProductList)
def admin_list_products(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """All products including inactive ones, newest first."""
    return {"products": crud.get_products(db, category=category, active_only=False)}


@app.post("/api/admin/products", response_model=schemas.ProductCreated, status_code=status.HTTP_201_CREATED)
def admin_create_product(
    product: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    db_product = crud.create_product(db, product)
    logger.info(f"Product {db_product.id} created by {current_user.id}")
    return {"id": db_product.id, "product": db_product}


@app.put("/api/admin/products/{product_id}", response_model=schemas.ProductEnvelope)
def admin_update_product(
    product_id: str,
    product: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    Update a product (admin only).

    Raises:
        NotFound: 404 if the product does not exist
    """
    db_product = crud.update_product(db, product_id, product)
    if db_product is None:
        raise NotFound("Product not found")
    return {"product": db_product}


@app.delete("/api/admin/products/{product_id}", response_model=dict)
def admin_delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    if not crud.delete_product(db, product_id):
        raise NotFound("Product not found")
    logger.info(f"Product {product_id} deleted by {current_user.id}")
    return {"ok": True}


@app.get("/api/admin/orders", response_model=schemas.AdminOrderList)
def admin_list_orders(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """All orders with their owner's name and email, newest first."""
    return {"orders": crud.get_orders(db)}


@app.patch("/api/admin/orders/{order_id}/status", response_model=schemas.OrderStatus)
def admin_update_order_status(
    order_id: str,
    body: schemas.OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    Move an order along processing -> shipped -> delivered (admin only).

    Args:
        order_id: ID of the order to update
        body: {"status": new_status}

    Returns:
        {"id": order_id, "status": new_status}

    Raises:
        InvalidPayload: 400 if the status is unknown or the transition is not allowed
        NotFound: 404 if the order does not exist
    """
    if body.status not in models.ORDER_STATUSES:
        raise InvalidPayload("Invalid status", code="INVALID_STATUS")

    db_order = crud.get_order(db, order_id)
    if db_order is None:
        raise NotFound("Order not found")

    is_valid, error_message = validators.validate_order_status_transition(db_order.status, body.status)
    if not is_valid:
        raise InvalidPayload(error_message, code="INVALID_STATUS_TRANSITION")

    db_order = crud.set_order_status(db, db_order, body.status, current_user.id)
    return {"id": db_order.id, "status": db_order.status}


@app.get("/api/admin/orders/{order_id}/timeline", response_model=List[schemas.OrderEvent])
def admin_order_timeline(
    order_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    Get the timeline of events for an order in chronological order.

    Raises:
        NotFound: 404 if the order does not exist
    """
    if crud.get_order(db, order_id) is None:
        raise NotFound("Order not found")
    return crud.get_order_events(db, order_id)


@app.get("/api/admin/users", response_model=schemas.UserList)
def admin_list_users(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    return {"users": crud.get_users(db)}


@app.post("/api/admin/users/promote-allowlisted", response_model=schemas.PromotionResult)
def admin_promote_allowlisted(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    Give the admin role to every registered user listed in ADMIN_EMAILS.

    This is the only way the allow-list affects roles.
    """
    promoted = crud.promote_allowlisted(db, settings.admin_emails)
    logger.info(f"Admin {current_user.email} promoted allow-listed users: {promoted}")
    return {"promoted": promoted}


@app.get("/api/admin/users/{user_id}", response_model=schemas.UserDetail)
def admin_get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    A user with their orders.

    Raises:
        NotFound: 404 if the user does not exist
    """
    db_user = crud.get_user(db, user_id)
    if db_user is None:
        raise NotFound("User not found")
    return {"user": db_user, "orders": crud.get_orders_for_user(db, db_user.id)}


@app.patch("/api/admin/users/{user_id}/role", response_model=schemas.UserProfileEnvelope)
def admin_update_role(
    user_id: str,
    body: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """
    Set a user's role (admin only).

    Raises:
        InvalidPayload: 400 if the role is not user or admin
        NotFound: 404 if the user does not exist
    """
    is_valid, error_message = validators.validate_role(body.role)
    if not is_valid:
        raise InvalidPayload(error_message, code="INVALID_ROLE")

    db_user = crud.get_user(db, user_id)
    if db_user is None:
        raise NotFound("User not found")

    db_user = crud.update_user_fields(db, db_user, role=body.role)
    logger.info(f"Admin {current_user.email} set role of {db_user.email} to {body.role}")
    return {"user": db_user}


@app.post("/api/admin/sales/reconcile", response_model=schemas.ReconcileResult)
def admin_reconcile_sales(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.require_admin)
):
    """Record the missing sale for every order that has none."""
    recorded, failed = checkout.reconcile_missing_sales(db, current_user.id)
    return {"recorded": recorded, "failed": failed}
