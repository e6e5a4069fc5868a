from __future__ import annotations
from typing import Iterable, List

from .diagnostics import Diagnostic

def write_asm(text: str, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)

def format_diagnostics(diags: Iterable[Diagnostic]) -> List[str]:
    return [str(d) for d in diags]
