import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "site-mirror-proxy")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

# Prometheus metrics live on their own port so no proxied path is shadowed
METRICS_PORT = int(os.getenv("METRICS_PORT", "0")) or None

STATIC_ASSET_OPTIMIZATION = (
    os.getenv("STATIC_ASSET_OPTIMIZATION", "true").lower() == "true"
)
WIDGET_SCRIPT_REWRITE = os.getenv("WIDGET_SCRIPT_REWRITE", "true").lower() == "true"

# Fixed upstream and widget addresses
TARGET_DOMAIN = "https://www.weintek.com"
WIDGET_MARKER = "weinbot-plugin"
WIDGET_HOST = "chatbot.weincloud.net"
WIDGET_URL = f"https://{WIDGET_HOST}/weintek.com"
WIDGET_REPLACEMENT_URL = "http://185.106.94.36"

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ProxyBot/1.0)"
DEFAULT_ACCEPT = "*/*"
DEFAULT_ACCEPT_LANGUAGE = "ru-RU,ru;q=0.9,en;q=0.8"
PROXY_SERVER_ID = "site-mirror/FastAPI"

UPSTREAM_TIMEOUT = 30.0
UPSTREAM_MAX_REDIRECTS = 5
UPSTREAM_MAX_CONNECTIONS = 100
UPSTREAM_MAX_KEEPALIVE_CONNECTIONS = 10

STATIC_ASSET_MAX_AGE = 7 * 24 * 60 * 60
STATIC_ASSET_EXTENSIONS = (
    "png",
    "jpg",
    "jpeg",
    "gif",
    "svg",
    "webp",
    "ico",
    "avif",
    "bmp",
    "woff",
    "woff2",
    "ttf",
    "otf",
    "eot",
    "js",
    "mjs",
    "css",
)
