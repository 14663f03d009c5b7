"""
Todo API configuration. Public identifiers have development defaults; secrets come from env only.
"""
import logging
import os
import secrets

logger = logging.getLogger(__name__)

# OIDC provider (issuer must match the token "iss" claim exactly, including any trailing slash)
ISSUER = os.environ.get("OIDC_ISSUER", "http://127.0.0.1:9000")
CLIENT_ID = os.environ.get("OIDC_CLIENT_ID", "todo-app")
# Confidential client secret; only used for the server-side code exchange
CLIENT_SECRET = os.environ.get("OIDC_CLIENT_SECRET", "").strip() or None
SCOPE = os.environ.get("OIDC_SCOPE", "openid email profile")
REDIRECT_URI = os.environ.get("OIDC_REDIRECT_URI", "http://127.0.0.1:3001/api/auth/callback")

# Where the browser lands after login / provider logout
APP_URL = os.environ.get("APP_URL", "http://127.0.0.1:5173/")
POST_LOGOUT_REDIRECT_URI = os.environ.get("POST_LOGOUT_REDIRECT_URI", APP_URL)

# "session": backend terminates OIDC and issues its own cookie
# "bearer": every request carries a provider access token verified against JWKS
# Exactly one per deployment.
AUTH_MODE = os.environ.get("AUTH_MODE", "session").strip().lower()
if AUTH_MODE not in ("session", "bearer"):
    raise ValueError(f"AUTH_MODE must be 'session' or 'bearer', got {AUTH_MODE!r}")

# Bearer mode: required "aud" of access tokens (providers such as Authentik use the client_id)
API_AUDIENCE = os.environ.get("OIDC_API_AUDIENCE", CLIENT_ID)

# Session mode: HS256 secret for the session cookie and the short-lived flow cookie
SESSION_SECRET = os.environ.get("SESSION_SECRET", "").strip()
if not SESSION_SECRET:
    SESSION_SECRET = secrets.token_urlsafe(32)
    logger.warning("SESSION_SECRET not set; using a random per-process secret (sessions end on restart)")
SESSION_ISSUER = os.environ.get("SESSION_ISSUER", "todo-api")
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", str(30 * 24 * 3600)))
SESSION_COOKIE = "session"
FLOW_COOKIE = "oidc_flow"
# Secure cookies need https; set COOKIE_SECURE=false for plain-http local development
COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "true").strip().lower() not in ("0", "false", "no")

# PostgreSQL in deployment (postgresql+psycopg2://...); SQLite for development
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./todos.db")

# Timeout (seconds) for every call to the provider
HTTP_TIMEOUT = float(os.environ.get("OIDC_HTTP_TIMEOUT", "10"))

# Comma-separated allowed browser origins; "*" allows any (credentials then disabled)
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# Per-IP, per minute, for /api/auth/login and /api/auth/callback
RATE_LIMIT_LOGIN_PER_MINUTE = int(os.environ.get("RATE_LIMIT_LOGIN_PER_MINUTE", "20"))

PORT = int(os.environ.get("PORT", "3001"))
