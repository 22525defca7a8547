#!/usr/bin/env python3
"""
Marker category tree and icon resolution.

Categories nest; a node's identity is the dotted path of names from the root
('zippy.portals.map_ports'). A POI names its category by that path and
inherits the icon of the deepest category on the path that defines one:

    exact path 'a.b.c' has an iconFile  -> use it
    otherwise try 'a.b', then 'a'        -> first iconFile wins
    nothing found                        -> None (caller uses a placeholder)

Nodes live in a flat arena and point at their parent by index. The
path -> node index is built once per tree; if two nodes share a dotted path
the one indexed later wins.

Usage:
    python3 marker_categories.py <document.xml> [type ...]
"""

import logging
import sys
from dataclasses import dataclass, field

from taco_xml import DEFAULT_CONFIG, ParserConfig, as_list, attribute, attributes

logger = logging.getLogger(__name__)


@dataclass
class CategoryNode:
    name: str
    parent: int | None
    icon_file: str | None = None
    attributes: dict = field(default_factory=dict)


class CategoryTree:
    """Arena of category nodes in document (pre-)order."""

    def __init__(self):
        self.nodes: list[CategoryNode] = []
        self._paths: list[str] = []
        self._index: dict[str, int] | None = None

    @classmethod
    def from_elements(cls, elements, config: ParserConfig = DEFAULT_CONFIG) -> 'CategoryTree':
        """Build a tree from parsed <MarkerCategory> element(s); several roots are fine."""
        tree = cls()
        stack = [(element, None) for element in reversed(as_list(elements))]
        while stack:
            element, parent = stack.pop()
            index = tree._add(element, parent, config)
            if index is None:
                continue
            children = element.get('MarkerCategory')
            for child in reversed(as_list(children)):
                stack.append((child, index))
        return tree

    def _add(self, element, parent: int | None, config: ParserConfig) -> int | None:
        name = attribute(element, 'name', config)
        if name is None or str(name) == '':
            parent_path = self._paths[parent] if parent is not None else '<root>'
            logger.warning(f'Skipping unnamed category under {parent_path}')
            return None

        name = str(name)
        icon = attribute(element, 'iconFile', config)
        node = CategoryNode(
            name=name,
            parent=parent,
            icon_file=str(icon) if icon not in (None, '', False) else None,
            attributes=attributes(element, config),
        )
        self.nodes.append(node)
        self._paths.append(f'{self._paths[parent]}.{name}' if parent is not None else name)
        self._index = None
        return len(self.nodes) - 1

    def __len__(self):
        return len(self.nodes)

    def path_of(self, index: int) -> str:
        return self._paths[index]

    def path_index(self) -> dict[str, int]:
        """Dotted path -> node index, later duplicates overwriting earlier ones."""
        if self._index is None:
            self._index = {path: i for i, path in enumerate(self._paths)}
        return self._index

    def resolve_icon(self, dotted_path) -> str | None:
        """Icon of the deepest category on dotted_path that has one."""
        if not isinstance(dotted_path, str) or not dotted_path:
            return None

        index = self.path_index()
        current = dotted_path
        while current:
            i = index.get(current)
            if i is not None and self.nodes[i].icon_file:
                return self.nodes[i].icon_file
            current = current.rpartition('.')[0]
        return None


def resolve_icon(categories, dotted_path, config: ParserConfig = DEFAULT_CONFIG) -> str | None:
    """One-shot resolution against parsed <MarkerCategory> element(s).

    Builds a throwaway tree; reuse a CategoryTree when resolving many POIs.
    """
    return CategoryTree.from_elements(categories, config).resolve_icon(dotted_path)


def main():
    from taco_xml import load_marker_file, overlay_data

    if len(sys.argv) < 2:
        print(f'Usage: {sys.argv[0]} <document.xml> [type ...]')
        sys.exit(1)

    root = overlay_data(load_marker_file(sys.argv[1]))
    tree = CategoryTree.from_elements(root.get('MarkerCategory'))
    print(f'{len(tree)} categories')

    if len(sys.argv) == 2:
        for i, node in enumerate(tree.nodes):
            depth = tree.path_of(i).count('.')
            print(f'  {"  " * depth}{node.name}  {node.icon_file or ""}')
        return

    for type_path in sys.argv[2:]:
        print(f'  {type_path} -> {tree.resolve_icon(type_path)}')


if __name__ == '__main__':
    main()
