import os
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger
from .paths import find_project_root, var_dir

log = get_logger("config")

BACKENDS = ("openai", "openrouter")
DEFAULT_BACKEND = "openai"
DEFAULT_OPENAI_MODEL = "gpt-5-mini"
DEFAULT_OPENROUTER_MODEL = "google/gemini-2.5-flash"

_TRUTHY = {"1", "true", "yes", "on"}


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: Optional[str]) -> Dict[str, str]:
    """Return key/value pairs from the nearest .env; does not mutate os.environ."""
    path = _find_upwards(dotenv_dir or os.getcwd(), ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir or '.')}")
        return {}
    env = {k: (v or "").strip() for k, v in dotenv_values(path).items() if k}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(dotenv_dir: Optional[str], *names: str) -> Optional[str]:
    """Return the first non-empty value for names, environment before .env."""
    for name in names:
        v = os.environ.get(name)
        if v and v.strip():
            return v.strip()
    env = _read_dotenv(dotenv_dir)
    for name in names:
        v = env.get(name)
        if v:
            return v
    return None


def load_backend(dotenv_dir: Optional[str] = None) -> str:
    v = (_lookup(dotenv_dir, "ROUTESCAN_BACKEND") or DEFAULT_BACKEND).lower()
    if v not in BACKENDS:
        log.warning(f"Unknown ROUTESCAN_BACKEND={v!r}; defaulting to '{DEFAULT_BACKEND}'")
        return DEFAULT_BACKEND
    return v


def load_openai(dotenv_dir: Optional[str] = None) -> Optional[str]:
    """Return OpenAI API key from env or .env (OPENAI_API_KEY or lowercase variant)."""
    return _lookup(dotenv_dir, "OPENAI_API_KEY", "openai_api_key")


def load_openai_model(dotenv_dir: Optional[str] = None) -> str:
    return _lookup(dotenv_dir, "OPENAI_MODEL") or DEFAULT_OPENAI_MODEL


def load_openai_base_url(dotenv_dir: Optional[str] = None) -> Optional[str]:
    return _lookup(dotenv_dir, "OPENAI_BASE_URL")


def load_openrouter(dotenv_dir: Optional[str] = None) -> Optional[str]:
    """Return OpenRouter API key from env or .env.

    Looks for OPEN_ROUTER_API_KEY (or lowercase variant).
    """
    return _lookup(dotenv_dir, "OPEN_ROUTER_API_KEY", "open_router_api_key")


def load_openrouter_model(dotenv_dir: Optional[str] = None) -> str:
    return _lookup(dotenv_dir, "OPENROUTER_MODEL") or DEFAULT_OPENROUTER_MODEL


def load_export_dir(dotenv_dir: Optional[str] = None) -> str:
    """Directory for generated spreadsheets (default: var/exports at repo root)."""
    v = _lookup(dotenv_dir, "ROUTESCAN_EXPORT_DIR")
    if v:
        return os.path.abspath(os.path.expanduser(v))
    return os.path.join(var_dir(find_project_root(dotenv_dir)), "exports")


def load_sort_policy(dotenv_dir: Optional[str] = None) -> bool:
    """Return True when non-numeric stop labels should sort after numeric ones."""
    v = _lookup(dotenv_dir, "ROUTESCAN_UNPARSED_LAST") or ""
    return v.lower() in _TRUTHY
