#!/usr/bin/env python3
"""
Placeholder textures for markers whose texture cannot be resolved.

Output entries reference the placeholders by a fixed path relative to the
pack root:

  burrito/unknown-poi-resize.png    (POI icons)
  burrito/unknown-trail-resize.png  (trail textures)

Each file is written into a bundle at most once. If a source image is
available it is resized to the placeholder size; otherwise a flat
magenta/black checker is drawn, which is what missing textures look like
in-game anyway.

Usage:
    python3 burrito_assets.py <bundle_dir> [--source-dir DIR]
"""

import io
import logging
import threading
from pathlib import Path

from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)

ASSET_DIR = 'burrito'
UNKNOWN_POI = 'unknown-poi-resize.png'
UNKNOWN_TRAIL = 'unknown-trail-resize.png'

UNKNOWN_POI_TEXTURE = f'{ASSET_DIR}/{UNKNOWN_POI}'
UNKNOWN_TRAIL_TEXTURE = f'{ASSET_DIR}/{UNKNOWN_TRAIL}'

# placeholder name -> (source image name, output size)
PLACEHOLDERS = {
    UNKNOWN_POI: ('unknown-poi.png', (64, 64)),
    UNKNOWN_TRAIL: ('unknown-trail.png', (32, 32)),
}

CHECKER_COLORS = ((255, 0, 255, 255), (0, 0, 0, 255))


def draw_checker(size: tuple[int, int], cells: int = 4) -> Image.Image:
    """Draw the magenta/black 'missing texture' checkerboard."""
    w, h = size
    img = Image.new('RGBA', size, CHECKER_COLORS[1])
    draw = ImageDraw.Draw(img)
    cw, ch = max(w // cells, 1), max(h // cells, 1)
    for row in range(0, h, ch):
        for col in range(0, w, cw):
            if (row // ch + col // cw) % 2 == 0:
                draw.rectangle([col, row, col + cw - 1, row + ch - 1], fill=CHECKER_COLORS[0])
    return img


def render_placeholder(name: str, source_dir: Path | None = None) -> bytes:
    """PNG bytes for a placeholder, resized from source art when there is any."""
    source_name, size = PLACEHOLDERS[name]
    img = None
    if source_dir is not None:
        source = Path(source_dir) / source_name
        if source.exists():
            try:
                img = Image.open(source).convert('RGBA').resize(size, Image.LANCZOS)
            except OSError as e:
                logger.warning(f'Cannot read placeholder source {source}: {e}')
    if img is None:
        img = draw_checker(size)

    buf = io.BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


class PlaceholderStager:
    """Writes placeholder textures into one bundle directory, once each.

    Threads sharing a stager serialise per placeholder, so stage() returns only
    after the file is on disk. Stagers in other processes pointing at the same
    bundle meet at the exclusive create, where losing the race is a no-op.
    A failed write is not remembered; the next call tries again.
    """

    def __init__(self, bundle_dir: str | Path, source_dir: str | Path | None = None):
        self.bundle_dir = Path(bundle_dir)
        self.source_dir = Path(source_dir) if source_dir else None
        self._staged: set[str] = set()
        self._locks = {name: threading.Lock() for name in PLACEHOLDERS}

    def stage(self, name: str) -> str:
        """Make sure placeholder `name` exists in the bundle; returns its texture path.

        Raises OSError when the bundle directory cannot be written.
        """
        if name not in PLACEHOLDERS:
            raise KeyError(f'unknown placeholder {name!r}')
        texture = f'{ASSET_DIR}/{name}'
        with self._locks[name]:
            if name in self._staged:
                return texture

            target = self.bundle_dir / ASSET_DIR / name
            if not target.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
                data = render_placeholder(name, self.source_dir)
                try:
                    with open(target, 'xb') as f:
                        f.write(data)
                    logger.info(f'Staged placeholder {target}')
                except FileExistsError:
                    pass
            self._staged.add(name)
        return texture


def main():
    import argparse
    parser = argparse.ArgumentParser(description='Write Burrito placeholder textures into a bundle')
    parser.add_argument('bundle_dir', help='Pack root to stage into')
    parser.add_argument('--source-dir', help='Directory with unknown-poi.png / unknown-trail.png')
    args = parser.parse_args()

    stager = PlaceholderStager(args.bundle_dir, args.source_dir)
    for name in PLACEHOLDERS:
        print(f'  {stager.stage(name)}')


if __name__ == '__main__':
    main()
