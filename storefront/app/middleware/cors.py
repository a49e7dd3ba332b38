# storefront/app/middleware/cors.py

"""
CORS setup shared by the HTTP API and the Socket.IO endpoint.

Environment variable:
    CORS_ALLOW_ORIGINS="http://localhost:3000,https://yourdomain.com"
"""

from typing import List

from fastapi.middleware.cors import CORSMiddleware

from storefront.app.config import settings


def allowed_origins(raw: str = None) -> List[str]:
    raw = raw if raw is not None else settings.CORS_ALLOW_ORIGINS
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["http://localhost:3000"]


def add_cors(app):
    """
    Attach CORS middleware to FastAPI app.
    This should be called BEFORE all other middleware.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
        max_age=86400,  # cache preflight
    )
