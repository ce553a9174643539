import asyncio
import logging
import os
import re
import time
from typing import Optional

from quart import Quart, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .admin.controller import bp as admin_bp
from .cart.controller import bp as cart_bp
from .cart.service import CartService
from .cart.store import CartStore, MemoryCartStore, eviction_worker, get_cart_store
from .common.config import settings
from .common.database import init_db
from .common.errors import InternalError, StoreError
from .common.kafka_client import close_producer
from .common.redis_client import close_redis
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .realtime.controller import bp as realtime_bp
from .seed import seed_catalog

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

# Get instance ID from environment
INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def normalize_endpoint(path: str) -> str:
    """Collapse ids so metric labels stay bounded."""
    if path.startswith("/orders/"):
        return "/orders/<id>"
    return _NUMERIC_SEGMENT.sub("/<id>", path)


def create_app(cart_store: Optional[CartStore] = None) -> Quart:
    app = Quart(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    store = cart_store or get_cart_store()
    app.extensions["cart_service"] = CartService(store)

    # Blueprints
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(realtime_bp)

    @app.errorhandler(StoreError)
    async def handle_store_error(error: StoreError):
        if error.http_status >= 500:
            log.error("Request failed | path=%s code=%s message=%s", request.path, error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SQLAlchemyError)
    async def handle_db_error(error: SQLAlchemyError):
        log.exception("Database error | path=%s", request.path)
        wrapped = InternalError("Database operation failed")
        return jsonify(wrapped.to_dict()), wrapped.http_status

    @app.before_request
    async def before_request():
        # Store start time
        request._start_time = time.time()
        log.debug("[Instance %s] %s %s", INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        if hasattr(request, "_start_time"):
            duration = time.time() - request._start_time
            endpoint = normalize_endpoint(request.path)
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=str(response.status_code)
            ).inc()
            # Add instance header to response
            response.headers["X-Instance-ID"] = INSTANCE_ID
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        log.info("Initializing database...")
        await init_db()
        if settings.SEED_ON_STARTUP:
            await seed_catalog()
        log.info("Database ready.")
        if isinstance(store, MemoryCartStore):
            stop_event = asyncio.Event()
            task = asyncio.create_task(eviction_worker(store, stop_event, settings.CART_EVICT_INTERVAL_SECONDS))
            app.extensions["cart_eviction"] = (stop_event, task)

    @app.after_serving
    async def shutdown():
        eviction = app.extensions.pop("cart_eviction", None)
        if eviction:
            stop_event, task = eviction
            stop_event.set()
            try:
                await asyncio.wait_for(task, timeout=2.0)
            except asyncio.TimeoutError:
                log.warning("Cart eviction worker did not stop in time")
        await close_producer()
        await close_redis()
        log.info("Shutdown complete.")

    return app
