"""Let ``import slimemold`` resolve to ``src/slimemold`` from a plain checkout."""
from __future__ import annotations

from pathlib import Path
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)

_SOURCE_TREE = Path(__file__).resolve().parent.parent / "src" / "slimemold"
if _SOURCE_TREE.is_dir() and str(_SOURCE_TREE) not in __path__:
    __path__.append(str(_SOURCE_TREE))
