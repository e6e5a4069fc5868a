'''
bit-twiddling de 64 bits (u64, s64, truncado de literales, hex)
'''

from __future__ import annotations
import math

# Máscaras de 64 y 32 bits sin signo
U64_MASK = 0xFFFF_FFFF_FFFF_FFFF
U32_MASK = 0xFFFF_FFFF

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1

# Constante de mezcla de la "Chaos Roll" (razón áurea, estilo splitmix64)
GOLDEN_GAMMA = 0x9E3779B97F4A7C15

def u64(x: int) -> int:
    """Fuerza el valor al rango de 64 bits sin signo."""
    return x & U64_MASK

def s64(x: int) -> int:
    """Interpreta x como entero de 64 bits con signo (complemento a dos)."""
    x &= U64_MASK
    return x - (1 << 64) if x >> 63 else x

def is_unsigned_nbit(x: int, n: int) -> bool:
    """Devuelve True si x está en [0, 2^n) (sin signo de n bits)."""
    if n <= 0:
        raise ValueError("n debe ser positivo")
    return 0 <= x < (1 << n)

def truncate_number(value: float) -> int:
    """Trunca un literal numérico a entero de 64 bits con signo, saturando.

    NaN vale 0; +/-inf y valores fuera de rango se saturan a los extremos.
    """
    if math.isnan(value):
        return 0
    if value >= 2.0 ** 63:
        return I64_MAX
    if value < -(2.0 ** 63):
        return I64_MIN
    return int(value)

def to_hex64(x: int, *, prefix: bool = True) -> str:
    """Representación hexadecimal de 64 bits en mayúsculas."""
    s = format(u64(x), "016X")
    return ("0x" + s) if prefix else s

def format_number(n: float) -> str:
    """Texto de un literal numérico: 5.0 -> '5', 1.5 -> '1.5'."""
    if math.isfinite(n) and n.is_integer():
        return str(int(n))
    return repr(n)
