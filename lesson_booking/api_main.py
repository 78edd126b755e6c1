from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import init_db, make_engine, make_session_factory
from .errors import BookingError, ValidationError
from .logging_config import setup_logging
from .reconciler import Reconciler
from .seed import seed_lessons

INDEX_HTML = """
<h1>Lesson Booking API</h1>
<h2>Available Routes</h2>
<ul>
  <li>GET <a href="/api/lessons">/api/lessons</a> - List all lessons</li>
  <li>PUT /api/lessons/update - Reduce spaces for an order or update lesson fields</li>
  <li>POST /api/orders - Create a new order</li>
  <li>GET /api/orders/{order_id} - Show an order</li>
</ul>
"""


# Request schemas

class CartItemIn(BaseModel):
    id: str = Field(..., min_length=1)
    count: int = Field(..., ge=1)


class OrderCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    cart_items: list[CartItemIn] = Field(..., alias="cartItems", min_length=1)


class FieldUpdateIn(BaseModel):
    id: str = Field(..., min_length=1)
    changes: dict[str, Any]


class LessonUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["reduce-spaces", "update-fields"]
    order_id: str | None = Field(default=None, alias="orderId")
    cart_items: list[CartItemIn] | None = Field(default=None, alias="cartItems")
    updates: list[FieldUpdateIn] | None = None


# Exception handlers

async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "validation_error", "message": "Invalid request body", "details": details},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "success": False,
                "error": f"Route {request.url.path} not found",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    return JSONResponse(status_code=exc.status_code, content={"error": "http_error", "message": exc.detail})


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled exception on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "An unexpected error occurred."},
    )


# App factory

def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def create_app(engine: Engine | None = None, seed: bool | None = None) -> FastAPI:
    setup_logging(settings.log_level)

    if engine is None:
        engine = make_engine()
    app = FastAPI(title="Lesson Booking API", version="1.0.0")
    app.state.engine = engine
    app.state.reconciler = Reconciler(make_session_factory(engine))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    @app.on_event("startup")
    def startup() -> None:
        # tables + default catalogue (idempotent)
        init_db(engine)
        if settings.seed_on_startup if seed is None else seed:
            seed_lessons(app.state.reconciler.session_factory)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        client = request.client.host if request.client else "unknown"
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f}ms) ip={client} ua={request.headers.get('user-agent', 'Unknown')}"
        )
        return response

    @app.get("/", response_class=HTMLResponse)
    def index() -> str:
        return INDEX_HTML

    # response_model=None: jsonable_encoder renders Decimal prices as JSON numbers
    @app.get("/api/lessons", response_model=None)
    def api_lessons(reconciler: Reconciler = Depends(get_reconciler)) -> list[dict]:
        return reconciler.list_lessons()

    @app.put("/api/lessons/update", response_model=None)
    def api_update_lessons(payload: LessonUpdateIn, reconciler: Reconciler = Depends(get_reconciler)) -> dict[str, Any]:
        """
        Universal lesson update:
        - reduce-spaces: reserve the cart of a pending order and confirm it
        - update-fields: partial update of one or more lessons
        """
        if payload.action == "reduce-spaces":
            if not payload.order_id:
                raise ValidationError("Order ID is required for reducing spaces", "orderId")
            cart = [{"id": i.id, "count": i.count} for i in payload.cart_items] if payload.cart_items is not None else None
            return reconciler.confirm_order(payload.order_id, cart).to_dict()

        if payload.updates is None:
            raise ValidationError("Updates array is required for field updates", "updates")
        updates = [{"id": u.id, "changes": u.changes} for u in payload.updates]
        return reconciler.patch_lesson_fields(updates).to_dict()

    @app.post("/api/orders", status_code=status.HTTP_201_CREATED, response_model=None)
    def api_create_order(payload: OrderCreateIn, reconciler: Reconciler = Depends(get_reconciler)) -> dict[str, Any]:
        order = reconciler.create_order(
            name=payload.name,
            phone=payload.phone,
            cart_items=[{"id": i.id, "count": i.count} for i in payload.cart_items],
        )
        return {"message": "Order created successfully", "orderId": order["id"], "order": order}

    @app.get("/api/orders/{order_id}", response_model=None)
    def api_get_order(order_id: str, reconciler: Reconciler = Depends(get_reconciler)) -> dict[str, Any]:
        return reconciler.get_order(order_id)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
