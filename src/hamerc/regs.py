'''
registros AArch64: nombres, registros dedicados y asignador monótono
'''

from __future__ import annotations
from typing import Dict, FrozenSet, List

from .diagnostics import fatal

# Registros con uso fijo en el código generado
SCRATCH = "x1"          # valor cargado para comparar/actualizar
SCRATCH2 = "x2"         # inmediatos que no caben en la instrucción
TEN = "x11"             # constante 10 para la división rápida de print
CHAOS_STATE = "x19"     # bloque de estado por defecto de la Chaos Roll
BUMP = "x20"            # puntero de la arena (bump allocator)
SYSCALL_NR = "x8"

# Primer registro que recibe variables del programa
FIRST_VAR_REG = 12
LAST_VAR_REG = 28

# x18 (plataforma), x29 (fp) y x30 (lr) tampoco se asignan
RESERVED: FrozenSet[str] = frozenset({"x18", CHAOS_STATE, BUMP, "x29", "x30"})

ALIASES: Dict[str, str] = {"fp": "x29", "lr": "x30"}

def normalize_reg(token: str) -> str:
    """Devuelve el nombre canónico 'xN' (o 'sp'/'xzr') o lanza ValueError.

    Los registros 'wN' se devuelven como 'wN' para que quien los use sepa que
    el acceso es de 32 bits.
    """
    t = token.strip().lower()
    if t in ALIASES:
        return ALIASES[t]
    if t in ("sp", "xzr", "wzr"):
        return t
    if t == "wsp":
        return "sp"
    if t[:1] in ("x", "w") and t[1:].isdigit():
        n = int(t[1:])
        if 0 <= n <= 30:
            return f"{t[0]}{n}"
    raise ValueError(f"Registro inválido: {token}")

def is_reg(token: str) -> bool:
    """Indica si el token representa un registro válido."""
    try:
        normalize_reg(token)
        return True
    except ValueError:
        return False

class RegisterAllocator:
    """Reparte registros nuevos en orden creciente; nunca reutiliza uno."""

    def __init__(self, first: int = FIRST_VAR_REG, last: int = LAST_VAR_REG):
        self._next = first
        self._last = last
        self.allocated: List[str] = []

    def fresh(self) -> str:
        while self._next <= self._last and f"x{self._next}" in RESERVED:
            self._next += 1
        if self._next > self._last:
            raise fatal(
                f"Registros agotados: {len(self.allocated)} variables ocupan x{FIRST_VAR_REG}..x{self._last}",
                hint="el compilador no reutiliza ni vuelca registros",
            )
        reg = f"x{self._next}"
        self._next += 1
        self.allocated.append(reg)
        return reg
