'''
subconjunto AArch64: condiciones de salto, inmediatos y formas de instrucción
'''

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

from .utils import is_unsigned_nbit, to_hex64, u64

# Syscalls de Linux AArch64 (número en x8, argumentos en x0..x5, svc #0)
SYS_WRITE = 64
SYS_EXIT = 93
SYS_EXIT_GROUP = 94
SYS_MMAP = 222
PROT_READ_WRITE = 3
MAP_PRIVATE_ANON = 34
STDOUT = 1
STDERR = 2

@dataclass(frozen=True)
class CondSpec:
    """Condición de b.<cond> en función de los flags NZCV.

    - negated: condición complementaria (la que salta cuando ésta no se cumple)
    - unsigned: True si compara sin signo (usa el flag C)
    """
    name: str
    negated: str
    unsigned: bool = False

CONDS: Dict[str, CondSpec] = {}

def _add(name: str, negated: str, unsigned: bool = False):
    CONDS[name] = CondSpec(name, negated, unsigned)

_add("eq", "ne")
_add("ne", "eq")
_add("hs", "lo", unsigned=True)
_add("lo", "hs", unsigned=True)
_add("hi", "ls", unsigned=True)
_add("ls", "hi", unsigned=True)
_add("mi", "pl")
_add("pl", "mi")
_add("vs", "vc")
_add("vc", "vs")
_add("ge", "lt")
_add("lt", "ge")
_add("gt", "le")
_add("le", "gt")

# Alias de GNU as
COND_ALIASES = {"cs": "hs", "cc": "lo"}

def cond(name: str) -> CondSpec:
    """Devuelve la CondSpec de una condición (acepta cs/cc). KeyError si no existe."""
    n = name.lower()
    return CONDS[COND_ALIASES.get(n, n)]

def negate(name: str) -> str:
    return cond(name).negated

def holds(name: str, n: bool, z: bool, c: bool, v: bool) -> bool:
    """Evalúa la condición sobre los flags NZCV."""
    c_name = cond(name).name
    if c_name == "eq": return z
    if c_name == "ne": return not z
    if c_name == "hs": return c
    if c_name == "lo": return not c
    if c_name == "hi": return c and not z
    if c_name == "ls": return not c or z
    if c_name == "mi": return n
    if c_name == "pl": return not n
    if c_name == "vs": return v
    if c_name == "vc": return not v
    if c_name == "ge": return n == v
    if c_name == "lt": return n != v
    if c_name == "gt": return not z and n == v
    return z or n != v  # le

# ---- Inmediatos ----

def fits_mov(value: int) -> bool:
    """mov rd, #imm cabe como movz de 16 bits sin desplazamiento."""
    return is_unsigned_nbit(value, 16)

def fits_arith(value: int) -> bool:
    """Inmediato de add/sub/cmp: 12 bits sin signo."""
    return is_unsigned_nbit(value, 12)

def mov_imm(rd: str, value: int) -> List[str]:
    """Carga un inmediato: mov si cabe, si no literal del pool (ldr =)."""
    if fits_mov(value):
        return [f"mov {rd}, #{value}"]
    return [f"ldr {rd}, ={to_hex64(u64(value))}"]

def arith_imm(mnemonic: str, rd: str, rn: str, value: int, *, scratch: str) -> List[str]:
    """add/sub con inmediato; usa 'scratch' cuando no cabe en 12 bits."""
    if fits_arith(value):
        return [f"{mnemonic} {rd}, {rn}, #{value}"]
    return mov_imm(scratch, value) + [f"{mnemonic} {rd}, {rn}, {scratch}"]

def cmp_imm(rn: str, value: int, *, scratch: str) -> List[str]:
    if fits_arith(value):
        return [f"cmp {rn}, #{value}"]
    return mov_imm(scratch, value) + [f"cmp {rn}, {scratch}"]

def mem(base: str, offset: int = 0) -> str:
    """Operando de memoria [base, #offset] (o [base] si el offset es 0)."""
    if offset == 0:
        return f"[{base}]"
    return f"[{base}, #{offset}]"
