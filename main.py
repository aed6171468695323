import logging
import os
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import Field
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import ProductQueryCache
from config import Settings, get_settings
from database import get_db
from errors import AppError, describe
from orders import OrderStore
from products import ProductStore
from receipts import generate_receipt
from schemas import (
    CamelModel,
    OrderCreate,
    OrderStatusUpdate,
    ProductCreate,
    ProductFilters,
    ProductUpdate,
    ToggleRequest,
)

VERSION = "3.0.1"

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic Schemas (API layer)
# -----------------------------
class ProductOut(CamelModel):
    id: str
    product_id: str
    title: str
    category: str = ""
    description: str = ""
    price: float
    final_price: float
    stock: int = 0
    discount: float = 0
    rating: float = 0
    recommended: bool = False
    best_seller: bool = False
    image: str = ""
    is_active: bool = True
    views: int = 0
    sold_count: int = 0
    added_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AddressOut(CamelModel):
    line1: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class CustomerOut(CamelModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: AddressOut = Field(default_factory=AddressOut)


class CartItemOut(CamelModel):
    product_id: str = ""
    title: str = ""
    name: str = ""
    price: float = 0
    qty: int = 1
    image: str = ""


class ReceiptInfo(CamelModel):
    created_at: Optional[datetime] = None


class OrderOut(CamelModel):
    id: str
    customer: CustomerOut
    cart_items: List[CartItemOut]
    total_items: int
    total_price: float
    payment_method: str
    payment_status: str
    order_status: str
    receipt: ReceiptInfo = Field(default_factory=ReceiptInfo)
    receipt_title: str
    ordered_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    admin_notes: str = ""
    tracking_id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


class ProductResponse(MessageResponse):
    product: ProductOut


class ProductListResponse(CamelModel):
    success: bool = True
    count: int
    from_cache: bool
    products: List[ProductOut]


class OrderResponse(MessageResponse):
    order: OrderOut


class OrderStatusListResponse(CamelModel):
    success: bool = True
    count: int
    orders: List[OrderOut]


class OrderListResponse(OrderStatusListResponse):
    total: int
    page: int
    page_size: int
    pages: int


# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title=f"{settings.store_name} API", version=VERSION)

app.state.product_cache = ProductQueryCache(ttl=settings.product_cache_ttl)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if not settings.is_production:
        elapsed = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed)
    return response


# -----------------------------
# Error envelopes
# -----------------------------
def error_response(status_code: int, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if detail and not settings.is_production:
        body["error"] = detail
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.detail)
    return error_response(exc.status_code, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    return error_response(400, f"Invalid request: {describe(exc.errors())}")


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return error_response(404, f"Route not found → {request.url.path}")
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal Server Error", str(exc))


# -----------------------------
# Dependencies
# -----------------------------
def get_product_cache(request: Request) -> ProductQueryCache:
    return request.app.state.product_cache


def get_product_store(
    db: Database = Depends(get_db),
    cache: ProductQueryCache = Depends(get_product_cache),
) -> ProductStore:
    return ProductStore(db, cache)


def get_order_store(db: Database = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


@app.get("/")
def root():
    return {
        "success": True,
        "message": f"{settings.store_name} API Running Successfully",
        "version": VERSION,
        "environment": settings.environment,
        "serverTime": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health(db: Database = Depends(get_db)):
    db.command("ping")
    return {"success": True, "status": "ok"}


# -----------------------------
# Products
# -----------------------------
@app.get("/api/products", response_model=ProductListResponse)
def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    best_seller: Optional[bool] = Query(None, alias="bestSeller"),
    recommended: Optional[bool] = None,
    store: ProductStore = Depends(get_product_store),
):
    filters = ProductFilters(
        category=category or None,
        min_price=min_price,
        max_price=max_price,
        search=search or None,
        best_seller=best_seller,
        recommended=recommended,
    )
    products, from_cache = store.list(filters)
    return {"success": True, "count": len(products), "fromCache": from_cache, "products": products}


@app.get("/api/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, store: ProductStore = Depends(get_product_store)):
    return {"success": True, "product": store.get(product_id)}


@app.post("/api/products", status_code=201, response_model=ProductResponse)
def create_product(payload: ProductCreate, store: ProductStore = Depends(get_product_store)):
    product = store.create(payload)
    return {"success": True, "message": "Product added successfully!", "product": product}


@app.patch("/api/products/{product_id}/toggle", response_model=ProductResponse)
def toggle_product_flag(
    product_id: str, payload: ToggleRequest, store: ProductStore = Depends(get_product_store)
):
    product = store.toggle(product_id, payload.field)
    return {"success": True, "message": f"{payload.field} toggled successfully!", "product": product}


@app.put("/api/products/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str, payload: ProductUpdate, store: ProductStore = Depends(get_product_store)
):
    product = store.update(product_id, payload)
    return {"success": True, "message": "Product updated successfully!", "product": product}


@app.delete("/api/products/{product_id}", response_model=MessageResponse)
def delete_product(product_id: str, store: ProductStore = Depends(get_product_store)):
    store.delete(product_id)
    return {"success": True, "message": "Product deleted successfully!"}


# -----------------------------
# Orders
# (literal segments before the /{order_id} catch-all)
# -----------------------------
@app.post("/api/orders", status_code=201, response_model=OrderResponse)
def create_order(payload: OrderCreate, store: OrderStore = Depends(get_order_store)):
    order = store.create(payload)
    return {"success": True, "message": "Order placed successfully!", "order": order}


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    store: OrderStore = Depends(get_order_store),
):
    orders, total = store.list(page, page_size)
    return {
        "success": True,
        "count": len(orders),
        "total": total,
        "page": page,
        "pageSize": page_size,
        "pages": (total + page_size - 1) // page_size,
        "orders": orders,
    }


@app.get("/api/orders/status/{status}", response_model=OrderStatusListResponse)
def list_orders_by_status(
    status: str,
    limit: int = Query(10, ge=1, le=100),
    store: OrderStore = Depends(get_order_store),
):
    orders = store.list_by_status(status, limit)
    return {"success": True, "count": len(orders), "orders": orders}


@app.get("/api/orders/receipt/download/{order_id}")
def download_receipt(order_id: str, store: OrderStore = Depends(get_order_store)):
    pdf, _ = store.get_receipt(order_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="Receipt_{order_id}.pdf"'},
    )


@app.get("/api/orders/receipt/{order_id}")
def create_receipt(
    order_id: str,
    store: OrderStore = Depends(get_order_store),
    config: Settings = Depends(get_settings),
):
    pdf, _ = generate_receipt(store, order_id, config)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="Receipt_{order_id}.pdf"'},
    )


@app.get("/api/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, store: OrderStore = Depends(get_order_store)):
    return {"success": True, "order": store.get(order_id)}


@app.put("/api/orders/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: str, payload: OrderStatusUpdate, store: OrderStore = Depends(get_order_store)
):
    order = store.update(order_id, payload)
    return {"success": True, "message": "Order updated successfully", "order": order}


@app.delete("/api/orders/{order_id}", response_model=MessageResponse)
def delete_order(order_id: str, store: OrderStore = Depends(get_order_store)):
    store.soft_delete(order_id)
    return {"success": True, "message": "Order deleted successfully"}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
