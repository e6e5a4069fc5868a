# src/hamerc/linker.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

from .asmtext import strip_comment, split_label, is_directive, split_mnemonic_operands, split_operands
from .diagnostics import Diagnostic, error, warning

# ---------- Resultado de la pasada 1 ----------

@dataclass(frozen=True)
class AsmInstr:
    """Instrucción de .text con sus operandos crudos (ya separados por comas)."""
    mnemonic: str
    operands: Tuple[str, ...]
    line: int

@dataclass(frozen=True)
class LinkResult:
    code: List[AsmInstr]
    symtab: Dict[str, int]
    data: bytes
    text_base: int
    data_base: int
    diagnostics: List[Diagnostic]

    def index_of(self, addr: int) -> int:
        """Índice en 'code' de una dirección de .text (cada instrucción ocupa 4 bytes)."""
        return (addr - self.text_base) // INSTR_SIZE

INSTR_SIZE = 4

# ---------- Helpers internos ----------

def _align_up(x: int, a: int) -> int:
    if a <= 0:
        raise ValueError("alignment must be positive")
    return (x + (a - 1)) & ~(a - 1)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "r": "\r"}

def unescape(inner: str) -> bytes:
    """Decodifica los escapes de una cadena de GNU as: \\n \\t \\r \\\\ \\" \\xNN y octales \\NNN."""
    out: List[str] = []
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 1 < len(inner):
            nxt = inner[i + 1]
            if nxt == "x" and i + 3 < len(inner):
                try:
                    out.append(chr(int(inner[i + 2:i + 4], 16)))
                    i += 4
                    continue
                except ValueError:
                    pass
            if nxt in "01234567":
                j = i + 1
                while j < len(inner) and j < i + 4 and inner[j] in "01234567":
                    j += 1
                out.append(chr(int(inner[i + 1:j], 8) & 0xFF))
                i = j
                continue
            if nxt in _ESCAPES:
                out.append(_ESCAPES[nxt])
                i += 2
                continue
        out.append(ch)
        i += 1
    return "".join(out).encode("utf-8")

def _parse_scalar(tok: str) -> Union[int, bytes]:
    """
    Convierte un token a int (dec/hex con signo) o bytes si es cadena entre comillas.
    """
    tok = tok.strip()
    if len(tok) >= 2 and tok[0] == '"' and tok[-1] == '"':
        return unescape(tok[1:-1])
    return int(tok, 0)

def _items(arg_str: str) -> List[Union[int, bytes]]:
    return [_parse_scalar(t) for t in split_operands(arg_str)]

# ---------- Pasada 1 (símbolos y layout de secciones) ----------

DATA_DIRS_SIZED = {
    ".byte": 1, ".2byte": 2, ".hword": 2, ".short": 2,
    ".4byte": 4, ".word": 4, ".long": 4,
    ".8byte": 8, ".dword": 8, ".quad": 8, ".xword": 8,
}
DATA_DIRS_TEXT = {".ascii", ".asciz", ".string"}
DATA_DIRS_SPACE = {".space", ".skip", ".zero"}
ALIGN_DIRS = {".align", ".balign", ".p2align"}
IGNORED_DIRS = {".globl", ".global", ".type", ".size", ".ltorg"}
SYNTAX_DIRS = {".intel_syntax", ".att_syntax"}

def first_pass(
    text: str,
    *,
    base_text: int = 0x0040_0000,
    base_data: int = 0x1000_0000,
) -> LinkResult:
    """Recorre el ensamblador emitido: instrucciones de .text, etiquetas y datos.

    Las etiquetas de .text valen base_text + 4*índice; las de .data, su dirección
    dentro del bloque de datos. Sólo las directivas que produce el generador (y
    las de datos más comunes) tienen efecto; el resto se ignora.
    """
    symtab: Dict[str, int] = {}
    diags: List[Diagnostic] = []
    code: List[AsmInstr] = []
    data = bytearray()
    section = ".text"

    def define(name: str, lineno: int):
        addr = base_text + INSTR_SIZE * len(code) if section == ".text" else base_data + len(data)
        if name in symtab:
            diags.append(error(f"Etiqueta redefinida: {name}", line=lineno))
        else:
            symtab[name] = addr

    def directive(core: str, lineno: int):
        nonlocal section
        d, rest = split_mnemonic_operands(core)
        if d in (".text", ".data", ".bss"):
            section = d
            return
        if d == ".section":
            name = rest.split(",")[0].strip()
            section = name if name in (".text", ".data", ".bss") else ".data"
            return
        if d in IGNORED_DIRS:
            return
        if d in SYNTAX_DIRS:
            diags.append(warning(f"{d} no tiene efecto en AArch64", line=lineno))
            return
        if section == ".text":
            diags.append(error(f"{d} sólo permitido en .data", line=lineno))
            return
        try:
            items = _items(rest)
        except ValueError:
            diags.append(error(f"{d} argumento inválido", line=lineno))
            return
        if d in ALIGN_DIRS:
            a = items[0] if items else 0
            a = max(1, a) if d == ".balign" else 1 << max(0, a)  # type: ignore[operator]
            data.extend(b"\x00" * (_align_up(len(data), a) - len(data)))
        elif d in DATA_DIRS_SPACE:
            data.extend(b"\x00" * max(0, int(items[0]) if items else 0))  # type: ignore[arg-type]
        elif d in DATA_DIRS_SIZED:
            size = DATA_DIRS_SIZED[d]
            for it in items:
                if isinstance(it, bytes):
                    diags.append(error(f"{d} no admite cadenas", line=lineno))
                    continue
                data.extend((it & ((1 << (8 * size)) - 1)).to_bytes(size, "little"))
        elif d in DATA_DIRS_TEXT:
            for it in items:
                data.extend(it if isinstance(it, bytes) else bytes([it & 0xFF]))
                if d != ".ascii":
                    data.append(0)
        else:
            diags.append(warning(f"Directiva ignorada: {d}", line=lineno))

    # sólo "\n" separa líneas, como en GNU as
    for lineno, raw in enumerate(text.split("\n"), start=1):
        core = strip_comment(raw)
        if not core:
            continue
        label, rest = split_label(core)
        if label:
            define(label, lineno)
            if not rest:
                continue
            core = rest
        if is_directive(core):
            directive(core, lineno)
            continue
        mnemonic, op_str = split_mnemonic_operands(core)
        if section != ".text":
            diags.append(error("Instrucción fuera de la sección .text", line=lineno))
            continue
        code.append(AsmInstr(mnemonic, tuple(split_operands(op_str)), lineno))

    return LinkResult(
        code=code, symtab=symtab, data=bytes(data),
        text_base=base_text, data_base=base_data, diagnostics=diags,
    )
