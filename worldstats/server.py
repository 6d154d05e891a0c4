import atexit
import datetime as dt
import logging
import traceback
from dataclasses import dataclass
from typing import List, Optional

import click
from flask import Flask, jsonify, redirect, request, url_for
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sock import Sock
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .auth import AuthService
from .cache import CacheFacade
from .config import Settings, get_settings
from .db import Database
from .errors import AppError, RateLimitError
from .logconfig import configure_logging
from .providers import Provider, default_providers
from .realtime import Broadcaster, init_websocket
from .routes import api
from .scheduler import SyncScheduler
from .seed import seed_database
from .services import ChartService, ComparisonService, CountryService, SummaryService, SyncService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Services shared by the HTTP routes, the WebSocket endpoint and the CLI."""

    settings: Settings
    database: Database
    cache: CacheFacade
    broadcaster: Broadcaster
    countries: CountryService
    charts: ChartService
    comparison: ComparisonService
    summaries: SummaryService
    sync: SyncService
    auth: AuthService
    scheduler: Optional[SyncScheduler] = None


def _error_response(message: str, code: str, status: int, exc: Optional[BaseException], settings: Settings):
    body = {"message": message, "code": code}
    if exc is not None and settings.env == "development":
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return jsonify({"success": False, "error": body}), status


class ServerFactory:
    """Class-based factory for the Flask server, cache, limiter and services."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        # Initialize settings once, defaulting to .env + env vars
        self.settings = settings or get_settings()

    def create_server(self) -> Flask:
        server = Flask(__name__)

        @server.route("/health")
        def health():
            return {"status": "ok", "time": dt.datetime.now(dt.timezone.utc).isoformat()}

        @server.route("/")
        def root():
            return redirect(url_for("api.index"))

        self.register_error_handlers(server)
        return server

    def create_cache(self, server: Flask) -> Cache:
        redis = self.settings.cache_type == "RedisCache"
        cache = Cache(server, config={
            "CACHE_TYPE": self.settings.cache_type,
            "CACHE_DEFAULT_TIMEOUT": 0,
            "CACHE_KEY_PREFIX": self.settings.cache_key_prefix,
            **({"CACHE_REDIS_URL": self.settings.redis_url} if redis else {}),
        })
        return cache

    def create_limiter(self, server: Flask) -> Limiter:
        use_redis = self.settings.cache_type == "RedisCache" and self.settings.redis_url
        limiter = Limiter(
            get_remote_address,
            app=server,
            storage_uri=self.settings.redis_url if use_redis else "memory://",
            enabled=self.settings.rate_limit_enabled,
        )
        limiter.limit(self.settings.rate_limit)(api)
        return limiter

    def register_error_handlers(self, server: Flask) -> None:
        settings = self.settings

        @server.errorhandler(AppError)
        def handle_app_error(e: AppError):
            log = logger.error if e.status_code >= 500 else logger.warning
            log("%s %s -> %s %s", request.method, request.path, e.status_code, e.message)
            return _error_response(e.message, e.code or "APP_ERROR", e.status_code, e, settings)

        @server.errorhandler(SQLAlchemyError)
        def handle_db_error(e: SQLAlchemyError):
            logger.error("%s %s -> database error", request.method, request.path, exc_info=e)
            return _error_response("Database operation failed", "DATABASE_ERROR", 500, e, settings)

        @server.errorhandler(HTTPException)
        def handle_http_error(e: HTTPException):
            status = e.code or 500
            logger.warning("%s %s -> %s", request.method, request.path, status)
            if status == 404:
                return _error_response(f"Route not found: {request.method} {request.path}", "NOT_FOUND", 404, None, settings)
            if status == 401:
                return _error_response(e.description or "Unauthorized", "UNAUTHORIZED", 401, None, settings)
            if status == 429:
                err = RateLimitError()
                return _error_response(err.message, err.code, 429, None, settings)
            return _error_response(e.description or e.name, "HTTP_ERROR", status, None, settings)

        @server.errorhandler(Exception)
        def handle_unexpected(e: Exception):
            logger.exception("%s %s -> unhandled error", request.method, request.path)
            message = "Internal server error" if settings.is_production else str(e) or "Internal server error"
            return _error_response(message, "INTERNAL_ERROR", 500, e, settings)

    def create_context(
        self,
        cache: Cache,
        database: Optional[Database] = None,
        providers: Optional[List[Provider]] = None,
    ) -> AppContext:
        settings = self.settings
        database = database or Database(settings)
        database.create_all()
        facade = CacheFacade(cache, settings=settings)
        broadcaster = Broadcaster()
        countries = CountryService(database, facade, settings)
        providers = default_providers(database, settings) if providers is None else providers
        return AppContext(
            settings=settings,
            database=database,
            cache=facade,
            broadcaster=broadcaster,
            countries=countries,
            charts=ChartService(database, facade, settings),
            comparison=ComparisonService(countries, facade, settings),
            summaries=SummaryService(database, facade, countries, settings),
            sync=SyncService(providers, database, facade, broadcaster),
            auth=AuthService(settings),
        )

    def register_cli(self, server: Flask, ctx: AppContext) -> None:
        @server.cli.command("init-db")
        def init_db():
            """Create database tables."""
            ctx.database.create_all()
            click.echo("Database schema created")

        @server.cli.command("seed")
        def seed():
            """Load the bundled seed countries."""
            count = seed_database(ctx.database)
            ctx.cache.invalidate_all()
            click.echo(f"Seeded {count} countries")

        @server.cli.command("sync")
        def sync():
            """Run every provider once and store the merged result."""
            report = ctx.sync.sync_all()
            for r in report.results:
                status = "ok" if r.success else f"failed ({r.error})"
                click.echo(f"{r.provider:<10} {status:<12} {r.count} records")
            click.echo(f"Sync {'completed' if report.success else 'failed'} in {report.duration_ms}ms")
            if not report.success:
                raise SystemExit(1)

    def build(
        self,
        database: Optional[Database] = None,
        providers: Optional[List[Provider]] = None,
    ) -> Flask:
        """Assemble the full application; `database`/`providers` override the defaults."""
        configure_logging(self.settings)
        server = self.create_server()
        cache = self.create_cache(server)
        ctx = self.create_context(cache, database=database, providers=providers)
        server.extensions["worldstats"] = ctx

        self.create_limiter(server)
        server.register_blueprint(api)
        # simple-websocket sends protocol pings and closes on a missed pong
        server.config["SOCK_SERVER_OPTIONS"] = {"ping_interval": self.settings.ws_heartbeat_interval}
        init_websocket(Sock(server), ctx.broadcaster, ctx.comparison)
        self.register_cli(server, ctx)

        if self.settings.enable_scheduler:
            ctx.scheduler = SyncScheduler(ctx.sync, ctx.broadcaster, self.settings)
            ctx.scheduler.start()
            atexit.register(ctx.scheduler.shutdown)
        atexit.register(ctx.broadcaster.shutdown)

        logger.info("WorldStats server ready (env=%s, cache=%s)", self.settings.env, ctx.cache.status()["backend"])
        return server


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    providers: Optional[List[Provider]] = None,
) -> Flask:
    return ServerFactory(settings).build(database=database, providers=providers)
