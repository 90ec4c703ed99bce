import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cnstrct.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Fernet key for QBO tokens at rest (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Derived from SECRET_KEY when not set
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Supabase Auth - access tokens are HS256 JWTs signed with the project JWT secret
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")
SUPABASE_JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8081")

# CORS - comma separated origins allowed to call this API with credentials
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "https://cnstrct-2.lovable.app,https://cnstrctnetwork.vercel.app,https://www.cnstrctnetwork.com,http://localhost:8081",
).split(",")

# Hostname the frontend is served from; selects the QBO redirect URI and environment
APP_HOSTNAME = os.getenv("APP_HOSTNAME", "localhost")
APP_ORIGIN = os.getenv("APP_ORIGIN")

# QuickBooks OAuth Configuration
# Production app keys
QBO_CLIENT_ID = os.getenv("QBO_CLIENT_ID", "")
QBO_CLIENT_SECRET = os.getenv("QBO_CLIENT_SECRET", "")
# Development (sandbox) app keys
QBO_SANDBOX_CLIENT_ID = os.getenv("QBO_SANDBOX_CLIENT_ID", "")
QBO_SANDBOX_CLIENT_SECRET = os.getenv("QBO_SANDBOX_CLIENT_SECRET", "")

# "direct" talks to Intuit with the client secret held here,
# "proxied" delegates the secret-holding step to QBO_TOKEN_PROXY_URL
QBO_TOKEN_TRANSPORT = os.getenv("QBO_TOKEN_TRANSPORT", "direct")
QBO_TOKEN_PROXY_URL = os.getenv("QBO_TOKEN_PROXY_URL", "")

# Extra hostname profiles as JSON: {"app.example.com": {"redirect_uri": "...", "production": true}}
QBO_HOST_PROFILES = os.getenv("QBO_HOST_PROFILES", "")

# Outbound HTTP behaviour
QBO_HTTP_TIMEOUT = float(os.getenv("QBO_HTTP_TIMEOUT", "10.0"))
QBO_RETRY_MAX_ATTEMPTS = int(os.getenv("QBO_RETRY_MAX_ATTEMPTS", "3"))
QBO_RETRY_BASE_DELAY = float(os.getenv("QBO_RETRY_BASE_DELAY", "0.5"))

# Default QBO references used when a record does not carry its own
QBO_DEFAULT_EXPENSE_ACCOUNT_ID = os.getenv("QBO_DEFAULT_EXPENSE_ACCOUNT_ID", "1")
QBO_DEFAULT_INCOME_ITEM_ID = os.getenv("QBO_DEFAULT_INCOME_ITEM_ID", "1")
