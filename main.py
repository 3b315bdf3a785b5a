# main.py: Board game loader (Shopify embedded admin app)
# =================================================================================================
# Routes
# - /            : board game list (GET) + "Create product" form handler (POST)
# - /products    : products already in the store
# - /settings    : placeholder
# - /auth, /auth/callback : OAuth install + callback (ShopifyAPI)
# - /health, /__routes
# Interceptors (before every route, in order)
# - shopify_auth  : OAuth session / APP_AUTH_TOKEN gate
# - graphql_proxy : POST /graphql -> store Admin GraphQL
# =================================================================================================

import os, sys, pathlib, logging, datetime as dt

from dotenv import load_dotenv
from flask import Flask, request, jsonify, Response

from services import middleware
from services.games import GameFetcher
from services.pages import compose_page, render_products_page, render_settings_page
from services.products import MutationIdle, ProductInput, ProductMutation, list_products
from services.admin import DEFAULT_API_VERSION

load_dotenv()

# ─────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
log = logging.getLogger("boardgame-loader")

try:
    pathlib.Path("logs").mkdir(exist_ok=True)
    fh = logging.FileHandler("logs/app.log")
    fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    logging.getLogger().addHandler(fh)
except OSError as e:
    log.warning("File logging disabled: %s", e)

logging.getLogger("urllib3").setLevel(logging.WARNING)

# ─────────────────────────────────────────────────────────────
# Env helpers
# ─────────────────────────────────────────────────────────────
def env_bool(k, d=False):
    v = os.getenv(k)
    return d if v is None else str(v).lower() in ("1", "true", "yes", "on", "y")
def env_str(k, d=""): return os.getenv(k, d)
def env_int(k, d):
    try: return int(os.getenv(k, d))
    except (TypeError, ValueError): return d

# ─────────────────────────────────────────────────────────────
# Core config
# ─────────────────────────────────────────────────────────────
SHOPIFY_API_KEY     = env_str("SHOPIFY_API_KEY", "").strip()
SHOPIFY_API_SECRET  = env_str("SHOPIFY_API_SECRET", "").strip()
SHOPIFY_SCOPES      = env_str("SHOPIFY_SCOPES", "write_products").strip()
SHOPIFY_APP_URL     = env_str("SHOPIFY_APP_URL", "").rstrip("/")

# single-store mode (custom app token), skips OAuth when both are set
SHOPIFY_STORE       = env_str("SHOPIFY_STORE", "").strip()
SHOPIFY_ADMIN_TOKEN = env_str("SHOPIFY_ADMIN_TOKEN", "").strip()
# callers must present this (Bearer / X-Auth / ?auth=) before the admin token is used for them
APP_AUTH_TOKEN      = env_str("APP_AUTH_TOKEN", "").strip()
API_VERSION         = env_str("SHOPIFY_API_VERSION", DEFAULT_API_VERSION).strip()

SESSION_COOKIE_SECURE = env_bool("SESSION_COOKIE_SECURE", True)
PRODUCTS_PAGE_SIZE  = env_int("PRODUCTS_PAGE_SIZE", 10)

if not SHOPIFY_API_SECRET:
    log.warning("[init] SHOPIFY_API_SECRET empty: sessions signed with a per-process key, OAuth callbacks will fail")
if SHOPIFY_STORE and SHOPIFY_ADMIN_TOKEN and not APP_AUTH_TOKEN:
    log.warning("[init] APP_AUTH_TOKEN empty: single-store mode is closed to every caller")

# ─────────────────────────────────────────────────────────────
# Flask app / interceptors
# ─────────────────────────────────────────────────────────────
app = Flask(__name__)
app.secret_key = SHOPIFY_API_SECRET or os.urandom(24)
app.config.update(
    SHOPIFY_API_KEY=SHOPIFY_API_KEY,
    SHOPIFY_API_SECRET=SHOPIFY_API_SECRET,
    SHOPIFY_SCOPES=SHOPIFY_SCOPES,
    SHOPIFY_APP_URL=SHOPIFY_APP_URL,
    SHOPIFY_STORE=SHOPIFY_STORE,
    SHOPIFY_ADMIN_TOKEN=SHOPIFY_ADMIN_TOKEN,
    APP_AUTH_TOKEN=APP_AUTH_TOKEN,
    SHOPIFY_API_VERSION=API_VERSION,
    # the admin loads the app inside an iframe
    SESSION_COOKIE_SAMESITE="None" if SESSION_COOKIE_SECURE else "Lax",
    SESSION_COOKIE_SECURE=SESSION_COOKIE_SECURE,
)

INTERCEPTORS = (middleware.shopify_auth, middleware.graphql_proxy)

@app.before_request
def run_interceptors():
    return middleware.run_pipeline(INTERCEPTORS)

def html(body: str, status: int = 200) -> Response:
    return Response(body, status=status, mimetype="text/html")

# ─────────────────────────────────────────────────────────────
# Pages
# ─────────────────────────────────────────────────────────────
@app.route("/", methods=["GET", "POST"])
def index():
    mutation = None
    if request.method == "POST":
        if not middleware.csrf_ok():
            log.warning("[index] create rejected: missing or stale csrf token")
            return jsonify({"ok": False, "error": "invalid_csrf"}), 400
        name = request.form.get("name")
        if name is None:
            return jsonify({"ok": False, "error": "missing_name"}), 400
        send = middleware.current_sender()
        if send is None:
            return jsonify({"ok": False, "error": "unauthorized"}), 401
        mutation = ProductMutation(send)
        mutation(ProductInput.for_game(name))

    fetcher = GameFetcher()
    fetcher.load()
    return html(compose_page(fetcher.state, mutation.state if mutation else MutationIdle(), action=request.path,
                             csrf_token=middleware.csrf_token()))

@app.get("/settings")
def settings():
    return html(render_settings_page())

@app.get("/products")
def products():
    send = middleware.current_sender()
    if send is None:
        return jsonify({"ok": False, "error": "unauthorized"}), 401
    try:
        items = list_products(send, first=PRODUCTS_PAGE_SIZE)
    except Exception as e:
        log.exception("[products] listing failed: %s", e)
        return html(render_products_page(error=True), status=502)
    return html(render_products_page(items))

# ─────────────────────────────────────────────────────────────
# OAuth
# ─────────────────────────────────────────────────────────────
@app.get("/auth")
def auth(): return middleware.begin_auth()

@app.get("/auth/callback")
def auth_callback(): return middleware.finish_auth()

# ─────────────────────────────────────────────────────────────
# Diagnostics
# ─────────────────────────────────────────────────────────────
@app.get("/__routes")
def list_routes():
    rules=[{"endpoint":r.endpoint,"methods":sorted([m for m in r.methods if m in {"GET","POST","PUT","DELETE","PATCH"}]),"rule":str(r)}
           for r in app.url_map.iter_rules() if r.endpoint!="static"]
    rules.sort(key=lambda x:x["rule"]); return jsonify({"ok":True,"routes":rules})

@app.get("/health")
def health(): return jsonify({"ok":True,"time_utc":dt.datetime.now(dt.timezone.utc).isoformat()})

# ─────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────
if __name__=="__main__":
    port=int(os.getenv("PORT","3000"))
    log.info("Listening on port %d", port)
    app.run(host="0.0.0.0", port=port)
