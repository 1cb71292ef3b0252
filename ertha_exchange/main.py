# ertha_exchange/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ertha_exchange.config import APP_NAME, APP_VERSION, get_settings
from ertha_exchange.errors import register_error_handlers
from ertha_exchange.logging_config import configure_logging
from ertha_exchange.middleware import register_middleware
from ertha_exchange.routes import (
    admin_routes, auth_routes, conversions_routes, payments_routes,
    services_routes, system_routes, transactions_routes, users_routes,
)


# --------------------------------------------------
# FastAPI App Initialization
# --------------------------------------------------
def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        description="ErthaExchange backend: coins, services, bookings, payments and moderation",
    )

    # --------------------------------------------------
    # Middleware
    # --------------------------------------------------
    register_middleware(app, settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=bool(settings.cors_origins),
    )

    register_error_handlers(app)

    # --------------------------------------------------
    # Routers
    # --------------------------------------------------
    prefix = settings.api_prefix
    app.include_router(system_routes.router)
    app.include_router(auth_routes.router, prefix=prefix)
    app.include_router(users_routes.router, prefix=prefix)
    app.include_router(services_routes.router, prefix=prefix)
    app.include_router(transactions_routes.router, prefix=prefix)
    app.include_router(payments_routes.router, prefix=prefix)
    app.include_router(conversions_routes.router, prefix=f"{prefix}/conversion")
    app.include_router(conversions_routes.router, prefix=f"{prefix}/conversions", include_in_schema=False)
    app.include_router(admin_routes.router, prefix=prefix)

    return app


app = create_app()
