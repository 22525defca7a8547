#!/usr/bin/env python3
"""
Convert TacO marker documents to Burrito map-indexed JSON.

Input:  {pack_dir}/*.xml marker documents, .trl files they reference
Output: {pack_dir}/{stem}.json per document, placeholder textures in {pack_dir}/burrito/

Output format:
  {
    "<mapId>": {
      "icons": [{"position": [x, y, z], "texture": "Data/icon.png"}, ...],
      "paths": [{"texture": "Data/trail.png", "points": [[x, y, z], ...]}, ...]
    },
    ...
  }

Map entries appear when first referenced. POIs are keyed by their MapID
attribute, trails by the map ID stored in the .trl file. Icons and paths keep
document order.

A bad entry (malformed POI, unreadable or truncated trail file) is logged and
skipped; it never stops the rest of the document.

Usage:
    python3 convert_burrito.py <pack_dir> [--workers N] [--log-level LEVEL]
"""

import json
import logging
import math
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Callable

from burrito_assets import UNKNOWN_POI_TEXTURE, UNKNOWN_TRAIL_TEXTURE, PlaceholderStager
from marker_categories import CategoryTree
from parse_trl import MalformedTrailData, decode_trail
from taco_xml import DEFAULT_CONFIG, ParserConfig, as_list, attribute, load_marker_file, overlay_data

logger = logging.getLogger(__name__)


class MissingTrailFile(FileNotFoundError):
    """Trail file referenced by a document is absent or unreadable."""


class MalformedEntry(ValueError):
    """POI or Trail element that cannot be converted."""


def directory_reader(root: str | Path) -> Callable[[str], bytes]:
    """Return a reader for files referenced relative to a pack root.

    Packs are authored on Windows, so 'Data\\x.trl' is normalised to
    'Data/x.trl'. Paths leaving the root are refused.
    """
    root = Path(root).resolve()

    def read(relative_path: str) -> bytes:
        rel = PurePosixPath(str(relative_path).replace('\\', '/'))
        if rel.is_absolute() or '..' in rel.parts:
            raise MissingTrailFile(f'{relative_path}: outside pack root')
        path = root.joinpath(*rel.parts)
        try:
            return path.read_bytes()
        except OSError as e:
            raise MissingTrailFile(f'{relative_path}: {e.strerror or e}') from e

    return read


def _map_entry(map_data: dict, map_id) -> dict:
    key = str(map_id)
    if key not in map_data:
        map_data[key] = {'icons': [], 'paths': []}
    return map_data[key]


def _poi_map_id(poi, config: ParserConfig) -> int:
    # Values may arrive as strings when the parser does not coerce them
    map_id = attribute(poi, 'MapID', config)
    if map_id is None or isinstance(map_id, bool):
        raise MalformedEntry(f'POI has no integer MapID ({map_id!r})')
    try:
        return int(str(map_id).strip())
    except ValueError:
        raise MalformedEntry(f'POI has no integer MapID ({map_id!r})') from None


def _poi_position(poi, config: ParserConfig) -> list[float]:
    position = []
    for axis in ('xpos', 'ypos', 'zpos'):
        value = attribute(poi, axis, config)
        if value is None or isinstance(value, bool):
            raise MalformedEntry(f'POI {axis} is not a number ({value!r})')
        try:
            number = float(str(value).strip())
        except ValueError:
            raise MalformedEntry(f'POI {axis} is not a number ({value!r})') from None
        if not math.isfinite(number):
            raise MalformedEntry(f'POI {axis} is not finite ({value!r})')
        position.append(number)
    return position


def _placeholder(stager: PlaceholderStager | None, texture: str) -> str:
    """Stage a placeholder, keeping its texture path even if the write fails."""
    if stager is None:
        return texture
    try:
        return stager.stage(PurePosixPath(texture).name)
    except OSError as e:
        logger.error(f'Cannot stage placeholder {texture}: {e}')
        return texture


def convert_pois(pois, categories: CategoryTree, map_data: dict,
                 stager: PlaceholderStager | None = None,
                 config: ParserConfig = DEFAULT_CONFIG) -> int:
    """Append icons for every POI; returns how many were placed."""
    placed = 0
    for poi in as_list(pois):
        try:
            if not isinstance(poi, dict):
                raise MalformedEntry('empty POI element')
            map_id = _poi_map_id(poi, config)
            position = _poi_position(poi, config)
        except MalformedEntry as e:
            logger.warning(f'Skipping POI: {e}')
            continue

        texture = attribute(poi, 'iconFile', config)
        if not texture:
            poi_type = attribute(poi, 'type', config)
            texture = categories.resolve_icon(poi_type)
            if not texture:
                logger.warning(f'Unknown POI texture for POI: {poi_type}')
                texture = _placeholder(stager, UNKNOWN_POI_TEXTURE)

        _map_entry(map_data, map_id)['icons'].append({
            'position': position,
            'texture': str(texture),
        })
        placed += 1
    return placed


def convert_trails(trails, read_binary: Callable[[str], bytes], map_data: dict,
                   stager: PlaceholderStager | None = None,
                   config: ParserConfig = DEFAULT_CONFIG) -> int:
    """Decode every Trail's .trl file and append it as a path; returns how many were added."""
    added = 0
    for trail in as_list(trails):
        trail_file = attribute(trail, 'trailData', config)
        if not trail_file:
            logger.warning(f'Skipping Trail without trailData: {trail!r}')
            continue

        try:
            decoded = decode_trail(read_binary(trail_file))
        except (MissingTrailFile, MalformedTrailData) as e:
            logger.error(f'Failed to process trail: {trail_file}: {e}')
            continue
        except Exception:
            logger.exception(f'Failed to process trail: {trail_file}')
            continue

        texture = attribute(trail, 'texture', config)
        if not texture:
            logger.warning(f'Unknown trail texture for trail: {trail_file}')
            texture = _placeholder(stager, UNKNOWN_TRAIL_TEXTURE)

        _map_entry(map_data, decoded.map_id)['paths'].append({
            'texture': str(texture),
            'points': decoded.points(),
        })
        added += 1
    return added


def convert_document(document: dict, read_binary: Callable[[str], bytes],
                     stager: PlaceholderStager | None = None,
                     config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """Convert one parsed marker document to the Burrito map structure."""
    map_data: dict = {}
    root = overlay_data(document)
    pois = root.get('POIs')
    if not isinstance(pois, dict):
        return map_data

    categories = CategoryTree.from_elements(root.get('MarkerCategory'), config)
    convert_pois(pois.get('POI'), categories, map_data, stager, config)
    convert_trails(pois.get('Trail'), read_binary, map_data, stager, config)
    return map_data


def _json_safe(value):
    # JSON has no NaN/Infinity; emit null like the web tooling expects
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    return value


def convert_marker_file(xml_path: str | Path, pack_root: str | Path,
                        stager: PlaceholderStager | None = None,
                        config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """Convert one document on disk and write {stem}.json next to it."""
    xml_path = Path(xml_path)
    document = load_marker_file(xml_path, config)
    map_data = convert_document(document, directory_reader(pack_root), stager, config)

    out_path = xml_path.with_suffix('.json')
    with open(out_path, 'w', encoding='utf-8') as f:
        json.dump(_json_safe(map_data), f, indent=2)
    return map_data


def convert_pack(pack_dir: str | Path, workers: int = 1,
                 placeholder_source: str | Path | None = None,
                 config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """Convert every top-level XML document of an extracted pack.

    Returns {document name: summary or error string}.
    """
    pack_dir = Path(pack_dir)
    xml_files = sorted(p for p in pack_dir.iterdir() if p.is_file() and p.suffix.lower() == '.xml')
    stager = PlaceholderStager(pack_dir, placeholder_source)

    def run(xml_path: Path):
        try:
            map_data = convert_marker_file(xml_path, pack_dir, stager, config)
        except Exception as e:
            logger.error(f'Failed to process XML file: {xml_path.name}: {e}')
            return xml_path.name, {'error': str(e)}
        summary = {
            'maps': len(map_data),
            'icons': sum(len(m['icons']) for m in map_data.values()),
            'paths': sum(len(m['paths']) for m in map_data.values()),
        }
        logger.info(f'Converted {xml_path.name}: {summary["maps"]} maps, '
                    f'{summary["icons"]} icons, {summary["paths"]} paths')
        return xml_path.name, summary

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(run, xml_files))
    else:
        results = [run(p) for p in xml_files]
    return dict(results)


def main():
    import argparse
    from config import load_settings
    from logging_config import setup_logging

    settings = load_settings()
    parser = argparse.ArgumentParser(description='Convert an extracted TacO marker pack to Burrito JSON')
    parser.add_argument('pack_dir', help='Extracted pack directory containing *.xml')
    parser.add_argument('--workers', type=int, default=settings.workers, help='Documents converted in parallel')
    parser.add_argument('--placeholder-source', default=settings.placeholder_source_dir,
                        help='Directory with unknown-poi.png / unknown-trail.png source art')
    parser.add_argument('--log-level', default=settings.log_level)
    args = parser.parse_args()

    setup_logging(args.log_level)

    pack_dir = Path(args.pack_dir)
    if not pack_dir.is_dir():
        print(f'ERROR: Pack directory not found: {pack_dir}')
        sys.exit(1)

    results = convert_pack(pack_dir, args.workers, args.placeholder_source)

    failed = [name for name, r in results.items() if 'error' in r]
    print(f'\n=== Summary ===')
    print(f'Documents: {len(results)}')
    print(f'Converted: {len(results) - len(failed)}')
    print(f'Failed:    {len(failed)}')
    for name in failed:
        print(f'  {name}: {results[name]["error"]}')
    if failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
