from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS, RATE_LIMIT_PER_MINUTE, SERVICE_NAME
from .errors import register_error_handlers
from .events import publisher
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware
from .routes import admin, admin_analytics, admin_services, admin_users, auth, bookings, providers, services

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Auth", "description": "Registration, login and the caller's profile."},
    {"name": "Providers", "description": "Provider profiles and verification requests."},
    {"name": "Services", "description": "Service catalogue and provider offerings."},
    {"name": "Bookings", "description": "Customer bookings and their status."},
    {"name": "Admin", "description": "Admin session, dashboard, verification queue and audit trail."},
    {"name": "Admin Users", "description": "User management."},
    {"name": "Admin Services", "description": "Service and category management."},
    {"name": "Admin Analytics", "description": "Platform analytics and revenue."},
]

app = FastAPI(title="LocalNest API", openapi_tags=OPENAPI_TAGS)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RateLimitMiddleware, max_per_minute=RATE_LIMIT_PER_MINUTE)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(providers.router)
app.include_router(services.router)
app.include_router(bookings.router)
app.include_router(admin.router)
app.include_router(admin_users.router)
app.include_router(admin_services.router)
app.include_router(admin_analytics.router)


@app.get("/health", tags=["System"])
async def health():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "events_enabled": publisher.enabled,
    }


@app.on_event("startup")
async def startup():
    try:
        await publisher.connect()
    except Exception as e:
        print(f"[localnest] RabbitMQ connect failed at startup; continuing without events: {e}")


@app.on_event("shutdown")
async def shutdown():
    try:
        await publisher.close()
    except Exception as e:
        print(f"[localnest] RabbitMQ close failed: {e}")
