# config.py
import json, sys
from pathlib import Path

# Resolve config.json both in dev and in PyInstaller .app bundles
if getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS"):
    BASE_DIR = Path(sys._MEIPASS)
else:
    BASE_DIR = Path(__file__).parent

CFG_PATH = str((BASE_DIR / "config.json").resolve())

DEFAULTS = {
    "remote_base": "",
    "chunk_size": 6 * 1024 * 1024,
    "max_attempts": 3,
    "retry_delay": 1.0,
    "max_concurrent": 4,
    "upsert": False,
}
REQUIRED = ("supabase_url", "api_key", "bucket")


def load_config(path=None):
    path = path or CFG_PATH
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise RuntimeError(f"Missing config.json at {path}. Copy config.example.json and fill in your project settings.")
    missing = [k for k in REQUIRED if not raw.get(k)]
    if missing:
        raise RuntimeError(f"config.json is missing required keys: {', '.join(missing)}")
    cfg = dict(DEFAULTS)
    cfg.update(raw)
    if int(cfg["chunk_size"]) <= 0:
        raise RuntimeError("chunk_size must be a positive number of bytes")
    if int(cfg["max_attempts"]) < 1:
        raise RuntimeError("max_attempts must be at least 1")
    if float(cfg["retry_delay"]) < 0:
        raise RuntimeError("retry_delay must not be negative")
    return cfg


def storage_endpoint(cfg) -> str:
    """Storage API root, e.g. https://xyz.supabase.co/storage/v1"""
    return cfg["supabase_url"].rstrip("/") + "/storage/v1"


def auth_headers(cfg) -> dict:
    # a user session token takes precedence over the anon/service key for Authorization
    token = cfg.get("access_token") or cfg["api_key"]
    return {"apikey": cfg["api_key"], "Authorization": f"Bearer {token}"}
