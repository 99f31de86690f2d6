import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pymongo.errors import PyMongoError

import errors
from accounts import AccountService
from config import Settings
from database import Database, OrderStore, UserStore
from log import configure_logging
from notifications import Mailer, Notifier
from orders import OrderService
from schemas import (
    AdminMailIn,
    AuthOut,
    HealthOut,
    LoginIn,
    MessageOut,
    Order,
    OrderCancelled,
    OrderCreated,
    OrderDraft,
    RegisterIn,
    SellerApplication,
    UserOut,
)
from security import (
    AccessGate,
    CredentialVerifier,
    bearer_scheme,
    current_claims,
    require_admin,
)

logger = structlog.get_logger(__name__)


# ---------- Dependencies ----------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


# ---------- Basic Routes ----------

basic_router = APIRouter()


@basic_router.get("/", response_model=MessageOut)
async def read_root():
    return {"message": "Storefront Backend Running"}


@basic_router.get("/api/health", response_model=HealthOut)
async def health(request: Request):
    status = await request.app.state.database.status()
    return HealthOut(backend="Running", **status)


# ---------- Order Routes ----------

order_router = APIRouter(prefix="/api/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderCreated)
async def create_order(
    draft: OrderDraft,
    claims: Dict[str, Any] = Depends(current_claims),
    orders: OrderService = Depends(get_orders),
):
    placed = await orders.place(draft, user_id=claims.get("sub"))
    message = "Order saved & email sent" if placed.notification.sent \
        else "Order saved, confirmation email not sent"
    return OrderCreated(message=message, order=placed.order, notification=placed.notification)


@order_router.get("/{email}", response_model=List[Order])
async def list_orders(
    email: str,
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
    orders: OrderService = Depends(get_orders),
):
    if settings.orders_list_requires_auth:
        if credentials is None:
            raise errors.Unauthenticated()
        claims = request.app.state.verifier.verify(credentials.credentials)
        same_user = claims["email"].lower() == email.strip().lower()
        if not same_user and not request.app.state.gate.allows(claims):
            raise errors.Forbidden("Not authorized to view these orders")
    return await orders.list_for(email)


@order_router.delete("/{order_id}", response_model=OrderCancelled)
async def cancel_order(order_id: str, orders: OrderService = Depends(get_orders)):
    cancelled = await orders.cancel(order_id)
    message = "Order cancelled & email sent" if cancelled.notification.sent \
        else "Order cancelled, cancellation email not sent"
    return OrderCancelled(message=message, notification=cancelled.notification)


# ---------- Auth Routes ----------

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", status_code=201, response_model=AuthOut)
async def register(body: RegisterIn, accounts: AccountService = Depends(get_accounts)):
    user, token = await accounts.register(body.name, str(body.email), body.password)
    return AuthOut(message="User registered", token=token, user=user)


@auth_router.post("/login", response_model=AuthOut)
async def login(body: LoginIn, accounts: AccountService = Depends(get_accounts)):
    user, token = await accounts.login(str(body.email), body.password)
    return AuthOut(message="Login successful", token=token, user=user)


# ---------- Admin Routes ----------

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@admin_router.get("/users", response_model=List[UserOut])
async def list_users(
    admin: Dict[str, Any] = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    return await accounts.list_users()


# ---------- Seller & Mail Routes ----------

seller_router = APIRouter(prefix="/api/seller", tags=["seller"])


@seller_router.post("/apply", response_model=MessageOut)
async def apply_as_seller(body: SellerApplication, notifier: Notifier = Depends(get_notifier)):
    outcome = await notifier.seller_application(body)
    if not outcome.sent:
        raise errors.NotificationFailure("Failed to send application email")
    return {"message": "Application submitted successfully"}


mail_router = APIRouter(prefix="/api", tags=["mail"])


@mail_router.post("/test-email", response_model=MessageOut)
async def send_test_email(body: AdminMailIn, notifier: Notifier = Depends(get_notifier)):
    outcome = await notifier.admin_test(str(body.to), body.subject, body.message)
    if not outcome.sent:
        raise errors.NotificationFailure("Failed to send email")
    return {"message": "Email sent successfully"}


# ---------- Error Handlers ----------

async def store_error_handler(request: Request, exc: errors.StoreError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Raw inputs are not echoed back; they may be non-finite floats JSON cannot carry.
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(details)},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error"})


# ---------- Application ----------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    try:
        verifier = CredentialVerifier(
            settings.jwt_secret, settings.jwt_algorithm, settings.jwt_expires_minutes
        )
        database = Database(
            settings.mongo_uri,
            settings.mongo_db_name,
            client=app.state.mongo_client,
            timeout_ms=settings.mongo_timeout_ms,
        )
        await database.connect()
    except (errors.ConfigurationError, PyMongoError) as e:
        logger.error("Startup failed", error=str(e))
        raise

    mailer = app.state.mailer or Mailer.from_settings(settings)
    if isinstance(mailer, Mailer) and settings.email_user:
        await mailer.verify()

    notifier = Notifier(mailer, settings.operator_email, settings.currency_symbol)
    app.state.database = database
    app.state.verifier = verifier
    app.state.gate = AccessGate(settings.admin_emails)
    app.state.notifier = notifier
    app.state.orders = OrderService(OrderStore(database.db["orders"]), notifier)
    app.state.accounts = AccountService(
        UserStore(database.db["users"]), verifier, settings.bcrypt_rounds
    )
    logger.info("Server ready", port=settings.port)

    try:
        yield
    finally:
        await database.close()


def create_app(settings: Optional[Settings] = None, mongo_client: Any = None,
               mailer: Any = None) -> FastAPI:
    """Build the application; the Mongo client and mailer may be injected."""
    settings = settings or Settings.from_env()
    configure_logging(settings.environment, settings.log_level)

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.mongo_client = mongo_client
    app.state.mailer = mailer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(errors.StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in (basic_router, order_router, auth_router, admin_router, seller_router, mail_router):
        app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    if not settings.mongo_uri:
        logger.error("MONGO_URI is not defined")
        sys.exit(1)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
