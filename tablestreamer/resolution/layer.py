"""Immutable property layers and override merging."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

_COMMENT_PREFIXES = ("#", "!")
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class PropertyLayer(Mapping):
    """Ordered, read-only ``str -> str`` mapping.

    Every "modifying" operation returns a new layer; the source pairs are never
    touched. Two layers compare equal when they hold the same pairs, so a layer
    also compares equal to a plain ``dict`` with the same content.
    """

    __slots__ = ("_pairs", "_source")

    def __init__(self, pairs: Union[Mapping, Iterable[Tuple[str, str]], None] = None, source: Optional[str] = None):
        items = pairs.items() if isinstance(pairs, Mapping) else (pairs or ())
        ordered: Dict[str, str] = {}
        for key, value in items:
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"Property keys and values must be strings: {key!r}={value!r}")
            ordered[key] = value
        self._pairs: Dict[str, str] = ordered
        self._source = source

    # Mapping protocol
    def __getitem__(self, key: str) -> str:
        return self._pairs[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        origin = f" source={self._source!r}" if self._source else ""
        return f"PropertyLayer({self._pairs!r}{origin})"

    @property
    def source(self) -> Optional[str]:
        """Path of the file this layer was read from, if any."""
        return self._source

    # Construction
    @classmethod
    def parse(cls, text: str, source: Optional[str] = None) -> "PropertyLayer":
        """Parse ``key=value`` / ``key: value`` lines. Later duplicates win."""
        pairs: List[Tuple[str, str]] = []
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith(_COMMENT_PREFIXES):
                continue
            key, value = _split_line(line)
            if key:
                pairs.append((key, value))
        return cls(pairs, source=source)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PropertyLayer":
        path = Path(path)
        return cls.parse(path.read_text(encoding="utf-8"), source=str(path))

    # Operations
    def merge(self, override: Mapping) -> "PropertyLayer":
        return merge(self, override)

    def without(self, *keys: str) -> "PropertyLayer":
        drop = set(keys)
        return PropertyLayer(((k, v) for k, v in self._pairs.items() if k not in drop), source=self._source)

    def without_prefix(self, prefix: str) -> "PropertyLayer":
        return PropertyLayer(((k, v) for k, v in self._pairs.items() if not k.startswith(prefix)), source=self._source)

    def with_prefix(self, prefix: str, strip: bool = False) -> "PropertyLayer":
        """Sub-layer of keys starting with ``prefix``, optionally with the prefix removed."""
        selected = ((k[len(prefix):] if strip else k, v) for k, v in self._pairs.items() if k.startswith(prefix))
        return PropertyLayer(selected, source=self._source)

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Value with surrounding whitespace removed; blank counts as absent."""
        value = self._pairs.get(key)
        if value is None or not value.strip():
            return default
        return value.strip()

    def get_list(self, key: str) -> List[str]:
        """Comma-separated value as a list, blanks dropped."""
        value = self._pairs.get(key) or ""
        return [item.strip() for item in value.split(",") if item.strip()]

    def get_int(self, key: str, default: int) -> int:
        value = self.get_str(key)
        if value is None:
            return default
        return int(value)

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get_str(key)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Not a boolean: {key}={value}")

    def to_dict(self) -> Dict[str, str]:
        return dict(self._pairs)

    def dumps(self) -> str:
        """Deterministic text rendering, keys sorted."""
        return "".join(f"{key}={self._pairs[key]}\n" for key in sorted(self._pairs))


def merge(base: Mapping, override: Mapping) -> PropertyLayer:
    """Every key of ``base``, with keys present in ``override`` replacing it."""
    merged: Dict[str, str] = dict(base.items())
    for key, value in override.items():
        merged[key] = value
    source = getattr(override, "source", None) or getattr(base, "source", None)
    return PropertyLayer(merged, source=source)


def _split_line(line: str) -> Tuple[str, str]:
    positions = [pos for pos in (line.find("="), line.find(":")) if pos != -1]
    if not positions:
        return line, ""
    pos = min(positions)
    return line[:pos].strip(), line[pos + 1:].strip()
