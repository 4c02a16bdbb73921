import logging
import os
from functools import lru_cache

logger = logging.getLogger("ubuntu.env")


@lru_cache(maxsize=1)
def ensure_loaded() -> None:
    """Load a central env file once, if one is present.

    Priority:
    1) UBUNTU_ENV_FILE path
    2) /etc/ubuntu-network/ubuntu.env
    3) .env (relative to CWD)
    Never overrides variables that are already set.
    """
    candidates = [
        os.getenv("UBUNTU_ENV_FILE", ""),
        "/etc/ubuntu-network/ubuntu.env",
        ".env",
    ]
    for p in candidates:
        if p and os.path.isfile(p):
            _load_env_file(p)
            return


def _load_env_file(path: str) -> None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except OSError as exc:
        logger.warning("Could not read env file %s: %s", path, exc)
        return
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip().strip('"').strip("'")
        if k and k not in os.environ:
            os.environ[k] = v
