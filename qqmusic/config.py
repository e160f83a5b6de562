"""Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level up from qqmusic/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"
SETTINGS_FILE = Path(os.getenv("SETTINGS_FILE", str(OUTPUT_DIR / "settings.json")))
SAVE_DIR = Path(os.getenv("SAVE_DIR", str(Path.home() / "Music" / "QQMusic")))

# ─── Remote service (fixed by QQ Music, match exactly) ───────────────────────
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
SEARCH_URL = "https://c.y.qq.com/soso/fcgi-bin/client_search_cp"
VKEY_URL = "https://u.y.qq.com/cgi-bin/musicu.fcg"
LYRIC_URL = "https://c.y.qq.com/lyric/fcgi-bin/fcg_query_lyric_new.fcg"
LYRIC_REFERER = "https://y.qq.com/"
COVER_URL = "https://y.gtimg.cn/music/photo_new/T002R{size}x{size}M000{albummid}.jpg"
DEFAULT_STREAM_PREFIX = "https://ws.stream.qqmusic.qq.com/"

# Search term used to verify a cookie (any popular artist works)
COOKIE_PROBE_QUERY = "周杰伦"

# ─── Network ──────────────────────────────────────────────────────────────────
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))
DOWNLOAD_TIMEOUT = float(os.getenv("DOWNLOAD_TIMEOUT", "300"))
SEARCH_PAGE_SIZE = int(os.getenv("SEARCH_PAGE_SIZE", "20"))

# ─── Playback ─────────────────────────────────────────────────────────────────
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "0.5"))   # seconds between progress samples
PLAYER_BIN = os.getenv("PLAYER_BIN", "ffplay")
PROBE_BIN = os.getenv("PROBE_BIN", "ffprobe")

# ─── Downloads ────────────────────────────────────────────────────────────────
DOWNLOAD_EXT = ".m4a"
FILENAME_REPLACEMENT = "_"

# ─── Credentials ──────────────────────────────────────────────────────────────
COOKIE_KEY = "qqmusic.cookie"
COOKIE_ENV = os.getenv("QQMUSIC_COOKIE", "").strip()

APP_VERSION = "1.1.0"

# ─── Web server ──────────────────────────────────────────────────────────────
WEB_HOST = os.getenv("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.getenv("WEB_PORT", "8888"))
CATALOG_LIMIT = int(os.getenv("CATALOG_LIMIT", "200"))   # searched tracks the web surface remembers

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "0").strip() in ("1", "true", "yes")
