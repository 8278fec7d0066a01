from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Selection:
    """A requested field and its sub-selection.

    Leaves are scalar requests; nodes with children are relationship requests.
    """
    name: str
    children: Tuple['Selection', ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def child(self, name: str) -> Optional['Selection']:
        for c in self.children:
            if c.name == name:
                return c
        return None

    def names(self) -> List[str]:
        return [c.name for c in self.children]

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], name: str = '') -> 'Selection':
        """Build from a nested ``{field: {sub: {}}}`` map (leaf == empty map)."""
        children = []
        for key, sub in (fields or {}).items():
            if isinstance(sub, Selection):
                children.append(sub)
            else:
                children.append(cls.from_fields(sub or {}, name=key))
        return cls(name=name, children=tuple(children))


def _children(node: Any) -> List[Any]:
    kids = getattr(node, 'selections', None) or getattr(node, 'children', None)
    return list(kids or [])


def _is_field(node: Any) -> bool:
    # FragmentSpread also has a name, but it carries a type_condition
    return getattr(node, 'name', None) is not None and not hasattr(node, 'type_condition')


def _merge(children: Iterable[Selection]) -> Tuple[Selection, ...]:
    """Combine repeated fields (aliases, overlapping fragments) by name."""
    order: List[str] = []
    merged: Dict[str, List[Selection]] = {}
    for c in children:
        if c.name not in merged:
            order.append(c.name)
            merged[c.name] = []
        merged[c.name].append(c)
    out = []
    for name in order:
        group = merged[name]
        if len(group) == 1:
            out.append(group[0])
            continue
        kids: List[Selection] = []
        for g in group:
            kids.extend(g.children)
        out.append(Selection(name=name, children=_merge(kids)))
    return tuple(out)


def _convert_children(node: Any) -> Tuple[Selection, ...]:
    out: List[Selection] = []
    for child in _children(node):
        if _is_field(child):
            name = str(child.name)
            if name.startswith('__'):
                continue
            out.append(Selection(name=name, children=_convert_children(child)))
        else:
            # Fragment spreads and inline fragments are flattened into the parent.
            out.extend(_convert_children(child))
    return _merge(out)


def selection_from_info(info: Any) -> Selection:
    """Selection tree of the field currently being resolved."""
    selected = list(getattr(info, 'selected_fields', None) or [])
    if not selected:
        return Selection(name=str(getattr(info, 'field_name', '') or ''))
    root = selected[0]
    return Selection(name=str(getattr(root, 'name', '')), children=_convert_children(root))


__all__ = ['Selection', 'selection_from_info']
