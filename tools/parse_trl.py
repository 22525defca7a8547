#!/usr/bin/env python3
"""
Decode TacO .trl trail files.

A trail file is a fixed little-endian layout with no self-describing schema:

  Header (8 bytes):
    int32 LE: version (unused)
    int32 LE: map ID
  Body:
    N × 12-byte records, each float32 LE x, y, z

There is no count field. N is (file size - 8) // 12; a trailing partial
record is dropped without complaint because some packs ship truncated files.

Usage:
    python3 parse_trl.py <file.trl> [--json]
"""

import json
import logging
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

import numpy as np

logger = logging.getLogger(__name__)

HEADER_SIZE = 8
RECORD_SIZE = 12
RECORD_DTYPE = np.dtype('<f4')


class MalformedTrailData(ValueError):
    """Trail buffer is too short to hold the 8-byte header."""


class Position(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class Trail:
    map_id: int
    positions: tuple[Position, ...]

    def points(self) -> list[list[float]]:
        """Positions as plain [x, y, z] lists, in file order."""
        return [[p.x, p.y, p.z] for p in self.positions]


def decode_trail(buffer: bytes) -> Trail:
    """Decode a trail buffer into its map ID and ordered positions."""
    if len(buffer) < HEADER_SIZE:
        raise MalformedTrailData(
            f'trail data is {len(buffer)} bytes, need at least {HEADER_SIZE}')

    map_id = struct.unpack_from('<i', buffer, 4)[0]
    count = (len(buffer) - HEADER_SIZE) // RECORD_SIZE
    if count == 0:
        return Trail(map_id, ())

    coords = np.frombuffer(buffer, dtype=RECORD_DTYPE, count=count * 3, offset=HEADER_SIZE)
    positions = tuple(Position(*row) for row in coords.reshape(count, 3).tolist())
    return Trail(map_id, positions)


def load_trail(path: str | Path) -> Trail:
    """Read a .trl file from disk and decode it."""
    data = Path(path).read_bytes()
    trail = decode_trail(data)
    leftover = (len(data) - HEADER_SIZE) % RECORD_SIZE
    if leftover:
        logger.debug(f'{path}: dropped {leftover} trailing bytes')
    return trail


def main():
    import argparse
    parser = argparse.ArgumentParser(description='Decode a TacO .trl trail file')
    parser.add_argument('path', help='Path to a .trl file')
    parser.add_argument('--json', action='store_true', help='Output as JSON')
    args = parser.parse_args()

    try:
        trail = load_trail(args.path)
    except (OSError, MalformedTrailData) as e:
        print(f'Error reading {args.path}: {e}')
        sys.exit(1)

    if args.json:
        print(json.dumps({'mapId': trail.map_id, 'points': trail.points()}, indent=2))
        return

    print(f'Trail: {args.path}')
    print(f'  Map ID: {trail.map_id}')
    print(f'  Points: {len(trail.positions)}')
    for p in trail.positions[:5]:
        print(f'    ({p.x:.2f}, {p.y:.2f}, {p.z:.2f})')
    if len(trail.positions) > 5:
        print(f'    ... +{len(trail.positions) - 5} more')


if __name__ == '__main__':
    main()
