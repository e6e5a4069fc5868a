from __future__ import annotations
from typing import List

from .linker import AsmInstr
from .regs import is_reg

def _copy(ins: AsmInstr, mnemonic: str, ops: list[str]) -> AsmInstr:
    return AsmInstr(mnemonic=mnemonic, operands=tuple(ops), line=ins.line)

def _zr(reg: str) -> str:
    return "wzr" if reg.strip().lower().startswith("w") else "xzr"

def _is_sp(op: str) -> bool:
    return op.strip().lower() in ("sp", "wsp")

def expand(code: List[AsmInstr]) -> List[AsmInstr]:
    """Reescribe los alias de GNU as a su forma canónica (la que ejecuta el emulador)."""
    out: List[AsmInstr] = []
    for n in code:
        m = n.mnemonic.lower(); ops = list(n.operands)

        if m == "cmp" and len(ops) >= 2: out.append(_copy(n,"subs",[_zr(ops[0])]+ops)); continue
        if m == "cmn" and len(ops) >= 2: out.append(_copy(n,"adds",[_zr(ops[0])]+ops)); continue
        if m == "tst" and len(ops) >= 2: out.append(_copy(n,"ands",[_zr(ops[0])]+ops)); continue
        if m == "neg" and len(ops) >= 2: out.append(_copy(n,"sub",[ops[0],_zr(ops[0])]+ops[1:])); continue
        if m == "mvn" and len(ops) >= 2: out.append(_copy(n,"orn",[ops[0],_zr(ops[0])]+ops[1:])); continue

        if m == "mov" and len(ops) == 2 and is_reg(ops[1]):
            if _is_sp(ops[0]) or _is_sp(ops[1]): out.append(_copy(n,"add",[ops[0],ops[1],"#0"])); continue
            out.append(_copy(n,"orr",[ops[0],_zr(ops[0]),ops[1]])); continue
        if m == "movz" and len(ops) == 2: out.append(_copy(n,"mov",ops)); continue

        if m in ("lsl","lsr","asr") and len(ops) == 3 and ops[2].startswith("#"):
            out.append(_copy(n,"orr",[ops[0],_zr(ops[0]),ops[1],f"{m} {ops[2]}"])); continue

        # ldr rd, =valor  -> mov rd, #valor ; ldr rd, =etiqueta -> adr rd, etiqueta
        if m == "ldr" and len(ops) == 2 and ops[1].startswith("="):
            lit = ops[1][1:].strip()
            try:
                int(lit, 0)
                out.append(_copy(n,"mov",[ops[0],"#"+lit])); continue
            except ValueError:
                out.append(_copy(n,"adr",[ops[0],lit])); continue

        out.append(n)
    return out
