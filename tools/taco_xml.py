#!/usr/bin/env python3
"""
Parse TacO marker XML documents into attribute-bag dictionaries.

Documents look like:

  <OverlayData>
    <MarkerCategory name="zippy" iconFile="Data/zippy.png">
      <MarkerCategory name="portals"> ... </MarkerCategory>
    </MarkerCategory>
    <POIs>
      <POI MapID="15" xpos="1.0" ypos="2.0" zpos="3.0" type="zippy.portals"/>
      <Trail type="zippy.route" trailData="Data/route.trl" texture="Data/arrow.png"/>
      <Route MapID="15" Name="..."> <POI .../> </Route>
    </POIs>
  </OverlayData>

Attributes land under prefixed keys ('@_MapID') next to child elements, and an
element that occurs once is returned as a dict rather than a one-item list.
Use as_list() before iterating children.

Usage:
    python3 taco_xml.py <document.xml>
"""

import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path

import xmltodict

INT_RE = re.compile(r'^[-+]?\d+$')
FLOAT_RE = re.compile(r'^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$')


@dataclass(frozen=True)
class ParserConfig:
    """How attribute names and values come out of the parser."""
    attr_prefix: str = '@_'
    coerce_values: bool = True
    allow_boolean_attributes: bool = True
    # Identifiers and paths; "2019" as a category name must stay a string
    string_attributes: frozenset = frozenset(
        {'name', 'type', 'guid', 'iconfile', 'texture', 'traildata'})


DEFAULT_CONFIG = ParserConfig()


def coerce_value(raw: str, config: ParserConfig = DEFAULT_CONFIG):
    """Turn an attribute string into an int, float or bool where it reads as one."""
    if not config.coerce_values:
        return raw
    text = raw.strip()
    if config.allow_boolean_attributes and text.lower() in ('true', 'false'):
        return text.lower() == 'true'
    if INT_RE.match(text):
        # Leading zeros are identifiers, not numbers
        if len(text.lstrip('+-')) > 1 and text.lstrip('+-').startswith('0'):
            return raw
        return int(text)
    if FLOAT_RE.match(text):
        return float(text)
    return raw


def parse_marker_xml(text: str | bytes, config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """Parse one marker document. Raises xml.parsers.expat.ExpatError on bad XML."""
    def postprocess(path, key, value):
        if key.startswith(config.attr_prefix) and isinstance(value, str):
            if key[len(config.attr_prefix):].lower() in config.string_attributes:
                return key, value
            return key, coerce_value(value, config)
        return key, value

    return xmltodict.parse(text, attr_prefix=config.attr_prefix, postprocessor=postprocess)


def load_marker_file(path: str | Path, config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """Read and parse a marker document from disk."""
    return parse_marker_xml(Path(path).read_bytes(), config)


def as_list(value) -> list:
    """Normalise a child slot: missing -> [], single element -> [element]."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def attribute(element, name: str, config: ParserConfig = DEFAULT_CONFIG, default=None):
    """Look up an attribute, falling back to a case-insensitive match.

    TacO itself treats attribute names case-insensitively, and packs in the wild
    mix 'MapID', 'mapid' and 'mapID'.
    """
    if not isinstance(element, dict):
        return default
    key = config.attr_prefix + name
    if key in element:
        return element[key]
    lowered = key.lower()
    for k, v in element.items():
        if k.lower() == lowered:
            return v
    return default


def attributes(element, config: ParserConfig = DEFAULT_CONFIG) -> dict:
    """All attributes of an element, keyed by unprefixed name."""
    if not isinstance(element, dict):
        return {}
    n = len(config.attr_prefix)
    return {k[n:]: v for k, v in element.items() if k.startswith(config.attr_prefix)}


def overlay_data(document: dict) -> dict:
    """The OverlayData root of a parsed document, or {} when absent/empty."""
    root = document.get('OverlayData') if isinstance(document, dict) else None
    return root if isinstance(root, dict) else {}


def main():
    if len(sys.argv) != 2:
        print(f'Usage: {sys.argv[0]} <document.xml>')
        sys.exit(1)

    document = load_marker_file(sys.argv[1])
    root = overlay_data(document)
    pois = root.get('POIs') if isinstance(root.get('POIs'), dict) else {}

    print(f'Document: {sys.argv[1]}')
    print(f'  Root categories: {len(as_list(root.get("MarkerCategory")))}')
    print(f'  POIs:   {len(as_list(pois.get("POI")))}')
    print(f'  Trails: {len(as_list(pois.get("Trail")))}')
    print(f'  Routes: {len(as_list(pois.get("Route")))}')
    for poi in as_list(pois.get('POI'))[:3]:
        print(f'    {json.dumps(attributes(poi))}')


if __name__ == '__main__':
    main()
