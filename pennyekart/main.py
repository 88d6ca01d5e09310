# pennyekart/main.py
import atexit
import logging
import time
from typing import Optional

from flask import Flask, request, session, jsonify, g, abort
from sqlalchemy.exc import SQLAlchemyError

from pennyekart.config import Config
from pennyekart.database import get_db, close_db, engine
from pennyekart.models import Base
from pennyekart.blueprints.admin import admin_bp
from pennyekart.blueprints.flash_sales import flash_sales_bp
from pennyekart.blueprints.storefront import storefront_bp
from pennyekart.observability import (
    configure_logging,
    increment_counter,
    observe_latency,
    get_metrics_snapshot,
    check_database_health,
    check_blob_storage_health,
)
from pennyekart.observability.logging_config import ensure_request_id
from pennyekart.services.flash_sale_watcher import ActiveFlashSaleWatcher

app = Flask(__name__, static_folder='../static')
Config.configure_app(app)
configure_logging(app)
app.register_blueprint(flash_sales_bp)
app.register_blueprint(storefront_bp)
app.register_blueprint(admin_bp)

logger = logging.getLogger(__name__)

_watcher: Optional[ActiveFlashSaleWatcher] = None


# Initialize database tables
def init_database():
    """Initialize database tables"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables initialized successfully")
    except SQLAlchemyError as e:
        logger.exception("Error initializing database: %s", e)

# Initialize database on startup
init_database()


def start_flash_sale_watcher() -> ActiveFlashSaleWatcher:
    """Start the background banner refresher once per process."""
    global _watcher
    if _watcher is None:
        _watcher = ActiveFlashSaleWatcher(interval=Config.FLASH_SALE_POLL_SECONDS).start()
        atexit.register(_watcher.stop)
    return _watcher


@app.before_request
def before_request_logging():
    g.request_started_at = time.perf_counter()
    g.request_id = ensure_request_id()
    increment_counter(
        "http_requests_total",
        labels={
            "method": request.method,
            "endpoint": request.endpoint or request.path,
        },
    )

@app.after_request
def after_request_logging(response):
    started = getattr(g, 'request_started_at', None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000
        observe_latency(
            "http_request_latency_ms",
            duration_ms,
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
    if response.status_code >= 500:
        increment_counter(
            "http_errors_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
        logger.error("Request finished with error status %s", response.status_code)
    else:
        logger.info("Request finished", extra={"status_code": response.status_code})
    response.headers.setdefault(Config.REQUEST_ID_HEADER, g.get("request_id", ""))
    return response

@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


@app.errorhandler(SQLAlchemyError)
def handle_database_error(error):
    get_db().rollback()
    logger.error("Database error: %s", error)
    return jsonify({'error': 'The store is temporarily unavailable. Please try again.'}), 500


@app.route('/health', methods=['GET'])
def health():
    db_status = check_database_health()
    blob_status = check_blob_storage_health(app.config["BLOB_STORAGE_DIR"])
    healthy = db_status.get("status") == "UP" and blob_status.get("status") == "UP"
    overall = "UP" if healthy else "DEGRADED"
    status_code = 200 if healthy else 503
    return jsonify({
        "status": overall,
        "components": {
            "database": db_status,
            "blob_storage": blob_status,
        }
    }), status_code

@app.route('/admin/metrics', methods=['GET'])
def admin_metrics():
    if not session.get("is_admin"):
        abort(403)
    return jsonify(get_metrics_snapshot())
