# core/config/bootstrap.py
from pathlib import Path
from typing import Optional
import configparser, os

ROOT = Path(__file__).resolve().parents[2]
CFG  = ROOT / "theses.cfg"

def bootstrap_db_path(cfg: Optional[Path] = None) -> Path:
    """Return SQLite path from env or theses.cfg or fallback."""
    if (env := os.getenv("THESES_DB")):
        return Path(env).expanduser()

    cfg = cfg or CFG
    if cfg.exists():
        p = configparser.ConfigParser()
        p.read(cfg, encoding="utf-8")
        if p.has_option("bootstrap", "db_path"):
            return Path(p.get("bootstrap", "db_path")).expanduser()

    # last fallback: project default
    return ROOT / "databases" / "theses.db"
