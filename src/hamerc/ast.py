'''
dataclases del AST de H@mer (una variante por tipo de sentencia)
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .lexer import TokenKind

# ---- Rutas ----

@dataclass(frozen=True)
class Path:
    """Referencia 'var' o 'var.campo'; sólo se consultan los dos primeros nombres."""
    parts: Tuple[str, ...]

    @property
    def base(self) -> str:
        return self.parts[0] if self.parts else ""

    @property
    def field(self) -> Optional[str]:
        return self.parts[1] if len(self.parts) > 1 else None

    def __bool__(self) -> bool:
        return bool(self.parts)

    def __str__(self) -> str:
        return ".".join(self.parts)

# ---- Declaraciones y memoria ----

@dataclass(frozen=True)
class Declare:
    """local nombre = número"""
    name: str
    value: float

@dataclass(frozen=True)
class ClassDef:
    """class Nombre is campo1 campo2 ... done"""
    name: str
    fields: Tuple[str, ...]

@dataclass(frozen=True)
class HeapAlloc:
    """local nombre = new Clase"""
    var: str
    class_name: str

# ---- Asignaciones ----

@dataclass(frozen=True)
class Assign:
    """ruta = número"""
    path: Path
    value: float

@dataclass(frozen=True)
class Update:
    """ruta = ruta <op> número (sólo se guardan op y número)"""
    path: Path
    op: TokenKind
    value: float

# ---- Salida ----

@dataclass(frozen=True)
class PrintVar:
    path: Path

@dataclass(frozen=True)
class PrintStr:
    text: str

# ---- Control de flujo ----

@dataclass(frozen=True)
class If:
    path: Path
    op: TokenKind
    value: float
    body: Tuple["Stmt", ...]

@dataclass(frozen=True)
class ChaosIf:
    """if ? N then ... done: ejecuta el cuerpo con probabilidad N/100."""
    chance: float
    body: Tuple["Stmt", ...]

@dataclass(frozen=True)
class While:
    path: Path
    op: TokenKind
    value: float
    body: Tuple["Stmt", ...]

# ---- Bloques embebidos ----

@dataclass(frozen=True)
class RawAsm:
    """Línea de ensamblador nativo (también marcadores 'nop' y comentarios)."""
    text: str

@dataclass(frozen=True)
class IntelAsm:
    """Línea en sintaxis alternativa, envuelta en .intel_syntax/.att_syntax."""
    text: str

@dataclass(frozen=True)
class Script:
    """Código para el intérprete externo; su salida se inyecta como comentario."""
    source: str

@dataclass(frozen=True)
class ModuleSource:
    """Texto crudo de un módulo incluido con Get; se expande al generar."""
    name: str
    text: str

Stmt = Union[
    Declare, ClassDef, HeapAlloc, Assign, Update, PrintVar, PrintStr,
    If, ChaosIf, While, RawAsm, IntelAsm, Script, ModuleSource,
]

NOP = RawAsm("nop")
