import tomllib
import shutil
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import os

CONFIG_DIR = Path.home() / ".linguaflip"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"

def _env_bool(name: str, default: Any) -> bool:
    return os.getenv(name, str(default)).lower() == "true"

def load_config() -> Dict[str, Any]:
    """Load config from ~/.linguaflip/config.toml, copy example if missing, load .env overrides."""
    load_dotenv()  # Load .env for overrides (e.g., LINGUAFLIP_SYNC_USER_ID)
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    session_cfg = config.get("session", {})
    config["session"] = {
        "max_cards": int(os.getenv("LINGUAFLIP_SESSION_MAX_CARDS", session_cfg.get("max_cards", 20))),
        "mode": os.getenv("LINGUAFLIP_SESSION_MODE", session_cfg.get("mode", "review-only")),
    }
    sync_cfg = config.get("sync", {})
    config["sync"] = {
        "user_id": os.getenv("LINGUAFLIP_SYNC_USER_ID", sync_cfg.get("user_id", "local")),
        "max_retries": int(os.getenv("LINGUAFLIP_SYNC_MAX_RETRIES", sync_cfg.get("max_retries", 3))),
        "backoff_base_seconds": float(os.getenv(
            "LINGUAFLIP_SYNC_BACKOFF_BASE_SECONDS", sync_cfg.get("backoff_base_seconds", 1.0)
        )),
        "timeout_seconds": float(os.getenv("LINGUAFLIP_SYNC_TIMEOUT_SECONDS", sync_cfg.get("timeout_seconds", 10.0))),
        "interval_seconds": float(os.getenv(
            "LINGUAFLIP_SYNC_INTERVAL_SECONDS", sync_cfg.get("interval_seconds", 300)
        )),
        "background": _env_bool("LINGUAFLIP_SYNC_BACKGROUND", sync_cfg.get("background", True)),
        "remote_db": os.getenv("LINGUAFLIP_REMOTE_DB", sync_cfg.get("remote_db", "remote.db")),
    }
    storage_cfg = config.get("storage", {})
    config["storage"] = {
        "data_dir": os.getenv("LINGUAFLIP_DATA_DIR", storage_cfg.get("data_dir", str(CONFIG_DIR))),
    }
    mastery_cfg = config.get("mastery", {})
    config["mastery"] = {
        "min_repetitions": int(mastery_cfg.get("min_repetitions", 5)),
        "difficult_ease_factor": float(mastery_cfg.get("difficult_ease_factor", 2.0)),
    }
    return config

def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('sync', 'max_retries')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value

def resolve_data_path(config: Dict[str, Any], filename: str) -> Path:
    """Resolve a storage file name against the configured data directory."""
    path = Path(filename).expanduser()
    if path.is_absolute():
        return path
    return Path(config["storage"]["data_dir"]).expanduser() / path
