"""Load detector credentials from .env files."""

from pathlib import Path
from typing import Dict, List, Optional
import os

from dotenv import load_dotenv

# Secret names consumed by the detector backends and GitHub reporters
SECRET_NAMES = ("GITHUB_TOKEN", "GITLEAKS_LICENSE", "SEMGREP_APP_TOKEN")

USER_ENV_FILE = Path.home() / ".scanwarden" / ".env"


def load_env(search_dirs: Optional[List[Path]] = None) -> List[Path]:
    """
    Load .env files without overriding variables already in the environment.

    The project ``.env`` wins over the user-level file, so it is loaded first.

    Returns:
        Files that were loaded
    """
    candidates = search_dirs or [Path.cwd()]
    loaded = []
    for directory in candidates:
        env_file = Path(directory) / ".env"
        if env_file.exists():
            load_dotenv(env_file, override=False)
            loaded.append(env_file)

    if USER_ENV_FILE.exists():
        load_dotenv(USER_ENV_FILE, override=False)
        loaded.append(USER_ENV_FILE)

    return loaded


def secret_status() -> Dict[str, bool]:
    """Report which known secrets are present (values are never returned)."""
    return {name: bool(os.getenv(name)) for name in SECRET_NAMES}
