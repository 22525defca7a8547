#!/usr/bin/env python3
"""
Download TacO marker packs and convert them to Burrito JSON.

Steps per pack:
  1. download {downloadurl} to {PACKAGES_DIR}/{filename}   (.taco = zip)
  2. extract to {PACKAGES_DIR}/{id}/
  3. convert every top-level *.xml (see convert_burrito.py)

The pack list is the GW2TacO MarkerPacks.json:
  {"markerpacks": [{"name": ..., "id": ..., "filename": ..., "downloadurl": ...}, ...]}

Offline mode (OFFLINE=1 or --offline) reads the list from MARKER_PACKS_FILE
and converts packs that are already extracted; nothing is downloaded.

A pack that fails to download, extract or convert is reported and the rest
carry on.

Usage:
    python3 fetch_marker_packs.py [--offline] [--pack ID ...] [--workers N]
"""

import json
import logging
import sys
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from pathlib import Path

import requests

from config import Settings, load_settings
from convert_burrito import convert_pack

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 16


@dataclass(frozen=True)
class MarkerPack:
    name: str
    id: str
    filename: str
    downloadurl: str
    enabledbydefault: bool = False

    @classmethod
    def from_json(cls, entry: dict) -> 'MarkerPack':
        missing = [k for k in ('name', 'id', 'filename', 'downloadurl') if not entry.get(k)]
        if missing:
            raise ValueError(f'pack entry missing {", ".join(missing)}: {entry!r}')
        return cls(
            name=str(entry['name']),
            id=str(entry['id']),
            filename=str(entry['filename']),
            downloadurl=str(entry['downloadurl']),
            enabledbydefault=bool(entry.get('enabledbydefault', False)),
        )


def parse_pack_list(data: dict) -> list[MarkerPack]:
    """Pack entries from a MarkerPacks.json document; bad entries are logged and dropped."""
    packs = []
    for entry in data.get('markerpacks', []):
        try:
            packs.append(MarkerPack.from_json(entry))
        except ValueError as e:
            logger.warning(f'Skipping pack: {e}')
    return packs


def fetch_pack_list(settings: Settings, session: requests.Session | None = None) -> list[MarkerPack]:
    if settings.offline:
        logger.info(f'Reading marker packs from {settings.marker_packs_file}')
        with open(settings.marker_packs_file, 'r', encoding='utf-8') as f:
            return parse_pack_list(json.load(f))

    logger.info(f'Fetching marker packs from {settings.marker_packs_url}')
    http = session or requests
    response = http.get(settings.marker_packs_url, timeout=settings.http_timeout)
    response.raise_for_status()
    return parse_pack_list(response.json())


def download_file(url: str, path: Path, timeout: float, session: requests.Session | None = None) -> int:
    """Stream url to path; returns bytes written."""
    http = session or requests
    path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with http.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(path, 'wb') as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                f.write(chunk)
                written += len(chunk)
    return written


def extract_taco(taco_path: Path, output_dir: Path) -> int:
    """Extract a .taco archive; returns the number of files written."""
    with zipfile.ZipFile(taco_path) as zf:
        names = [n for n in zf.namelist() if not n.endswith('/')]
        # extractall() sanitises '..' and absolute member names
        zf.extractall(output_dir)
    return len(names)


def process_marker_pack(pack: MarkerPack, settings: Settings,
                        session: requests.Session | None = None) -> dict:
    """Download, extract and convert one pack. Raises on download/extract failure."""
    extract_path = settings.packages_dir / pack.id
    taco_path = settings.packages_dir / pack.filename

    if not settings.offline:
        logger.info(f'Downloading {pack.filename} from {pack.downloadurl}')
        size = download_file(pack.downloadurl, taco_path, settings.http_timeout, session)
        logger.info(f'Extracting {pack.filename} ({size} bytes) to {extract_path}')
        extract_taco(taco_path, extract_path)
    elif not extract_path.is_dir():
        raise FileNotFoundError(f'{extract_path} not extracted (offline mode)')

    logger.info(f'Processing XML files for {pack.name}')
    return convert_pack(extract_path, placeholder_source=settings.placeholder_source_dir)


def process_all(packs: list[MarkerPack], settings: Settings, workers: int = 1) -> dict:
    """Run every pack, in parallel when workers > 1. Returns {pack id: result}."""
    results = {}

    def run(pack: MarkerPack):
        try:
            return pack.id, {'documents': process_marker_pack(pack, settings)}
        except (requests.RequestException, zipfile.BadZipFile, OSError) as e:
            logger.error(f'Failed to process marker pack {pack.name} ({pack.id}): {e}')
            return pack.id, {'error': str(e)}
        except Exception as e:
            # zipfile raises RuntimeError for encrypted members, NotImplementedError
            # for unsupported compression
            logger.exception(f'Failed to process marker pack {pack.name} ({pack.id})')
            return pack.id, {'error': str(e)}

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(run, p) for p in packs]
            for future in as_completed(futures):
                pack_id, result = future.result()
                results[pack_id] = result
    else:
        for pack in packs:
            pack_id, result = run(pack)
            results[pack_id] = result
    return results


def main():
    import argparse
    from logging_config import setup_logging

    settings = load_settings()
    parser = argparse.ArgumentParser(description='Download TacO marker packs and convert them to Burrito JSON')
    parser.add_argument('--offline', action='store_true', default=settings.offline,
                        help='Use the local pack list and already-extracted packs')
    parser.add_argument('--packages-dir', type=Path, default=settings.packages_dir)
    parser.add_argument('--pack', action='append', default=[], metavar='ID',
                        help='Only process this pack ID (repeatable)')
    parser.add_argument('--workers', type=int, default=settings.workers, help='Packs processed in parallel')
    parser.add_argument('--log-level', default=settings.log_level)
    args = parser.parse_args()

    setup_logging(args.log_level)
    settings = replace(settings, packages_dir=args.packages_dir, offline=args.offline,
                       workers=max(1, args.workers), log_level=args.log_level)

    try:
        packs = fetch_pack_list(settings)
    except (requests.RequestException, OSError, ValueError) as e:
        logger.error(f'Cannot load marker pack list: {e}')
        sys.exit(1)

    if args.pack:
        wanted = set(args.pack)
        packs = [p for p in packs if p.id in wanted]

    settings.packages_dir.mkdir(parents=True, exist_ok=True)
    print(f'Found {len(packs)} marker packs')
    results = process_all(packs, settings, settings.workers)

    failed = {k: v for k, v in results.items() if 'error' in v}
    documents = sum(len(v.get('documents', {})) for v in results.values())
    print(f'\n=== Summary ===')
    print(f'Packs:     {len(results)}')
    print(f'Failed:    {len(failed)}')
    print(f'Documents: {documents}')
    for pack_id, result in sorted(failed.items()):
        print(f'  {pack_id}: {result["error"]}')


if __name__ == '__main__':
    main()
