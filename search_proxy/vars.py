import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "search-proxy")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

PUBLIC_DIR = os.environ.get(
    "PUBLIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public")
)

SEARCH_ENDPOINT = os.environ.get(
    "SEARCH_ENDPOINT", "https://lite.duckduckgo.com/lite/"
)
# Endpoints the HTML rewriter points links and forms at
PROXY_PATH = "/proxy"
FORM_PROXY_PATH = "/formproxy"

USER_AGENT = os.environ.get("PROXY_USER_AGENT", "simple-search-proxy/1.0")
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))

RATE_LIMIT_WINDOW_MS = int(os.environ.get("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_MAX = int(os.environ.get("RATE_LIMIT_MAX", "60"))
# Seconds between evictions of idle identifiers
RATE_LIMIT_SWEEP_INTERVAL = float(os.environ.get("RATE_LIMIT_SWEEP_INTERVAL", "60"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
