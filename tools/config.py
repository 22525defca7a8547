"""
Settings for the marker pack tools, read from the environment and .env.

  MARKER_PACKS_URL        pack list to download (JSON with a "markerpacks" array)
  MARKER_PACKS_FILE       local copy of the pack list, used when offline
  PACKAGES_DIR            where .taco files are downloaded and extracted
  OFFLINE / DEBUG         1 = no network, packs must already be extracted
  WORKERS                 packs / documents converted in parallel
  HTTP_TIMEOUT            seconds per request
  LOG_LEVEL               DEBUG, INFO, WARNING, ERROR
  PLACEHOLDER_SOURCE_DIR  art for the unknown-poi / unknown-trail placeholders
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent

DEFAULT_MARKER_PACKS_URL = 'https://raw.githubusercontent.com/BoyC/GW2TacO/main/MarkerPacks.json'


@dataclass(frozen=True)
class Settings:
    marker_packs_url: str = DEFAULT_MARKER_PACKS_URL
    marker_packs_file: Path = ROOT / 'MarkerPacks.json'
    packages_dir: Path = ROOT / 'packages'
    offline: bool = False
    workers: int = 4
    http_timeout: float = 60.0
    log_level: str = 'INFO'
    placeholder_source_dir: Path | None = None


def _env_flag(name: str) -> bool:
    return os.getenv(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f'Invalid {name}={raw!r}, using {default}')
        return default


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if not raw:
        return default
    path = Path(raw)
    return path if path.is_absolute() else ROOT / path


def load_settings(dotenv_path: str | Path | None = None) -> Settings:
    """Build Settings from the environment, loading .env first (existing vars win)."""
    load_dotenv(dotenv_path or ROOT / '.env', override=False)

    return Settings(
        marker_packs_url=os.getenv('MARKER_PACKS_URL') or DEFAULT_MARKER_PACKS_URL,
        marker_packs_file=_env_path('MARKER_PACKS_FILE', ROOT / 'MarkerPacks.json'),
        packages_dir=_env_path('PACKAGES_DIR', ROOT / 'packages'),
        offline=_env_flag('OFFLINE') or os.getenv('DEBUG') == '1',
        workers=max(1, _env_number('WORKERS', 4, int)),
        http_timeout=_env_number('HTTP_TIMEOUT', 60.0, float),
        log_level=(os.getenv('LOG_LEVEL') or 'INFO').upper(),
        placeholder_source_dir=_env_path('PLACEHOLDER_SOURCE_DIR', None),
    )
