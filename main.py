import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import ORDERS, PRODUCTS, USERS, Store, get_store
from logging_config import setup_logging
from payments import GatewayError, PaymentGateway, new_receipt_id, to_minor_units
from schemas import (
    AdminReport,
    CreateOrderRequest,
    LoginRequest,
    LoginResponse,
    Order,
    ProductIn,
    ProductOut,
    ProductUpdate,
    RecordOrderRequest,
    RegisterRequest,
    User,
    commission_for,
)
from security import PasswordHasher
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)

MISSING_FIELD_ERRORS = {"missing", "string_too_short", "too_short", "string_type", "float_type", "list_type"}


def _is_missing(error: dict) -> bool:
    # empty strings, nulls and zero amounts count as absent, whatever the field's type
    if error.get("type") == "greater_than" and error.get("input") == 0:
        return True
    return error.get("type") in MISSING_FIELD_ERRORS or error.get("input") in ("", None)


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _object_id(product_id: str) -> ObjectId:
    try:
        return ObjectId(product_id)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid product id")


def _product_out(doc: dict) -> ProductOut:
    return ProductOut.model_validate({**doc, "id": str(doc["_id"])})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    settings = app.state.settings
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = Store.connect(settings.database_url, settings.database_name)
    try:
        app.state.store.ensure_indexes()
    except PyMongoError as e:
        logger.error("database_initialization_failed", error=str(e))
        raise
    logger.info("application_startup", database_name=settings.database_name, port=settings.port)

    yield

    logger.info("application_shutdown")
    if owns_store:
        app.state.store.close()
        app.state.store = None


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    gateway: Optional[PaymentGateway] = None,
    hasher: Optional[PasswordHasher] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(title="Farm Marketplace API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway or PaymentGateway(settings.stripe_secret_key)
    app.state.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Response:
        start_time = time.time()
        response = await call_next(request)
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 4),
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if not errors or any(_is_missing(err) for err in errors):
            message = "All fields are required"
        else:
            field = errors[0].get("loc", ["request"])[-1]
            message = f"Invalid value for {field}"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(PyMongoError)
    async def store_exception_handler(request: Request, exc: PyMongoError) -> JSONResponse:
        logger.error("store_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Database error"})

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    def read_root():
        return {"message": "Farm Marketplace API running"}

    @app.get("/test")
    def test_database(
        store: Store = Depends(get_store),
        settings: Settings = Depends(get_app_settings),
    ):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = store.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    # Auth

    @app.post("/register")
    def register(
        payload: RegisterRequest,
        store: Store = Depends(get_store),
        hasher: PasswordHasher = Depends(get_hasher),
    ):
        user = User(
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            password=hasher.hash(payload.password),
            role=payload.role,
        )
        try:
            uid = store.create_document(USERS, user)
        except DuplicateKeyError:
            raise HTTPException(status_code=409, detail="Email already registered")
        except PyMongoError as e:
            logger.error("user_registration_failed", email=payload.email, error=str(e))
            raise HTTPException(status_code=500, detail="Could not register user")
        logger.info("user_registered", user_id=uid, role=payload.role)
        return {"success": True, "message": "User registered successfully"}

    @app.post("/login", response_model=LoginResponse)
    def login(
        payload: LoginRequest,
        store: Store = Depends(get_store),
        hasher: PasswordHasher = Depends(get_hasher),
        settings: Settings = Depends(get_app_settings),
    ):
        if payload.role == "admin":
            if payload.email != settings.admin_email or not hasher.verify(
                payload.password, settings.admin_password_hash or ""
            ):
                logger.warning("admin_login_rejected")
                raise HTTPException(status_code=401, detail="Invalid admin credentials")
            return {"role": "admin", "name": "Admin"}

        user = store[USERS].find_one({"email": payload.email, "role": payload.role})
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if not hasher.verify(payload.password, user.get("password", "")):
            raise HTTPException(status_code=401, detail="Wrong password")
        return {"role": user["role"], "name": user.get("name", "")}

    # Products

    @app.post("/add-product")
    def add_product(payload: ProductIn, store: Store = Depends(get_store)):
        try:
            pid = store.create_document(PRODUCTS, payload)
        except PyMongoError as e:
            logger.error("product_create_failed", farmer_email=payload.farmer_email, error=str(e))
            raise HTTPException(status_code=500, detail="Failed to add item")
        logger.info("product_created", product_id=pid)
        return {"success": True, "id": pid}

    @app.get("/products", response_model=List[ProductOut])
    def list_farmer_products(
        farmer_email: Optional[str] = Query(None, alias="farmerEmail"),
        store: Store = Depends(get_store),
    ):
        if not farmer_email:
            return []
        return [_product_out(doc) for doc in store.get_documents(PRODUCTS, {"farmerEmail": farmer_email})]

    @app.get("/all-products", response_model=List[ProductOut])
    def list_all_products(store: Store = Depends(get_store)):
        return [_product_out(doc) for doc in store.get_documents(PRODUCTS)]

    @app.put("/update-product/{product_id}")
    def update_product(product_id: str, payload: ProductUpdate, store: Store = Depends(get_store)):
        oid = _object_id(product_id)
        changes = payload.model_dump(by_alias=True, exclude_none=True)
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")
        changes["updated_at"] = datetime.now(timezone.utc)
        try:
            result = store[PRODUCTS].update_one({"_id": oid}, {"$set": changes})
        except PyMongoError as e:
            logger.error("product_update_failed", product_id=product_id, error=str(e))
            raise HTTPException(status_code=500, detail="Could not update product")
        if result.matched_count == 0:
            raise HTTPException(status_code=404, detail="Product not found")
        return {"success": True}

    @app.delete("/delete-product/{product_id}")
    def delete_product(product_id: str, store: Store = Depends(get_store)):
        oid = _object_id(product_id)
        try:
            result = store[PRODUCTS].delete_one({"_id": oid})
        except PyMongoError as e:
            logger.error("product_delete_failed", product_id=product_id, error=str(e))
            raise HTTPException(status_code=500, detail="Could not delete product")
        if result.deleted_count == 0:
            raise HTTPException(status_code=404, detail="Product not found")
        logger.info("product_deleted", product_id=product_id)
        return {"success": True}

    # Orders

    @app.post("/create-order")
    def create_order(
        payload: CreateOrderRequest,
        gateway: PaymentGateway = Depends(get_gateway),
        settings: Settings = Depends(get_app_settings),
    ):
        try:
            return gateway.create_order(
                to_minor_units(payload.total_amount), settings.currency, new_receipt_id()
            )
        except GatewayError:
            raise HTTPException(status_code=500, detail="Failed to create order")

    @app.post("/record-order")
    def record_order(
        payload: RecordOrderRequest,
        store: Store = Depends(get_store),
        gateway: PaymentGateway = Depends(get_gateway),
        settings: Settings = Depends(get_app_settings),
    ):
        try:
            payment = gateway.fetch_payment(payload.payment_id)
        except GatewayError:
            raise HTTPException(status_code=502, detail="Could not reach payment gateway")
        if not gateway.is_settled(payment, to_minor_units(payload.total_amount), settings.currency):
            logger.warning(
                "payment_verification_failed",
                payment_id=payload.payment_id,
                status=payment.get("status"),
            )
            raise HTTPException(status_code=400, detail="Payment could not be verified")

        order = Order(
            buyer_email=payload.buyer_email,
            items=payload.items,
            total_amount=payload.total_amount,
            commission=commission_for(payload.total_amount),
            payment_id=payload.payment_id,
        )
        try:
            oid = store.create_document(ORDERS, order)
        except PyMongoError as e:
            logger.error("order_save_failed", payment_id=payload.payment_id, error=str(e))
            raise HTTPException(status_code=500, detail="Error saving order")
        logger.info("order_recorded", order_id=oid, total_amount=order.total_amount, commission=order.commission)
        return {"success": True, "message": "Order saved successfully", "id": oid}

    @app.get("/admin-report", response_model=AdminReport)
    def admin_report(store: Store = Depends(get_store)):
        try:
            orders = store.get_documents(ORDERS)
        except PyMongoError as e:
            logger.error("admin_report_failed", error=str(e))
            raise HTTPException(status_code=500, detail="Could not get admin stats")
        return AdminReport(
            total_orders=len(orders),
            total_sales=round(sum(o.get("totalAmount", 0) for o in orders), 2),
            total_commission=round(sum(o.get("commission", 0) for o in orders), 2),
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
