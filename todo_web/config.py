"""
Todo web client configuration. Public client: no secret; holds the provider's tokens itself.
"""
import os

# OIDC provider; the issuer is used as-is (Authentik issuers end in "/")
ISSUER = os.environ.get("OIDC_ISSUER", "http://127.0.0.1:9000")

CLIENT_ID = os.environ.get("OIDC_CLIENT_ID", "todo-app")

# Callback URL registered at the provider
REDIRECT_URI = os.environ.get("OIDC_REDIRECT_URI", "http://127.0.0.1:8000/callback")

SCOPE = os.environ.get("OIDC_SCOPE", "openid email profile")

# Todo API (run with AUTH_MODE=bearer)
API_URL = os.environ.get("TODO_API_URL", "http://127.0.0.1:3001").rstrip("/")

# Reload-surviving token store (JSON file); empty keeps tokens in memory only
TOKEN_STORE_PATH = os.environ.get("TODO_WEB_TOKEN_STORE", ".todo_web_tokens.json").strip() or None

# Access tokens within this many seconds of expiry are treated as expired
EXPIRY_BUFFER_SECONDS = int(os.environ.get("TODO_WEB_EXPIRY_BUFFER", "60"))

HTTP_TIMEOUT = float(os.environ.get("OIDC_HTTP_TIMEOUT", "10"))

PORT = int(os.environ.get("PORT", "8000"))
