# src/hamerc/emulator.py
'''
emulador del subconjunto AArch64 que emite el generador (Linux: write, exit, mmap)
'''
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import isa
from .linker import AsmInstr, LinkResult, first_pass
from .pseudo import expand
from .regs import is_reg, normalize_reg
from .utils import U32_MASK, s64, u64

# Layout de memoria del proceso emulado
STACK_TOP = 0x7FFF_0000
STACK_SIZE = 0x1_0000
MMAP_BASE = 0x2000_0000
PAGE = 0x1000

DEFAULT_COUNTER = 0x0000_1234_5678_9ABC
DEFAULT_MAX_STEPS = 1_000_000

class EmulatorError(Exception):
    """Instrucción no soportada, acceso a memoria inválido o programa que no termina."""

# ---- Operandos ----

@dataclass(frozen=True)
class Reg:
    name: str   # 'xN', 'wN', 'sp', 'xzr', 'wzr'

    @property
    def wide(self) -> bool:
        return not self.name.startswith("w")

@dataclass(frozen=True)
class Imm:
    value: int

@dataclass(frozen=True)
class Mem:
    """[base, #offset] con '!' opcional (pre-indexado con escritura de la base)."""
    base: Reg
    offset: int = 0
    writeback: bool = False

@dataclass(frozen=True)
class Shift:
    kind: str   # 'lsl', 'lsr', 'asr'
    amount: int

@dataclass(frozen=True)
class Sym:
    name: str

Operand = Union[Reg, Imm, Mem, Shift, Sym]

MEM_RE = re.compile(r"^\[\s*(?P<base>[A-Za-z0-9]+)\s*(?:,\s*#?(?P<off>[-+]?(?:0x[0-9a-fA-F]+|\d+)))?\s*\](?P<wb>!?)$")
SHIFT_RE = re.compile(r"^(?P<kind>lsl|lsr|asr)\s+#?(?P<amt>\d+)$", re.IGNORECASE)
INT_RE = re.compile(r"^[-+]?(?:0x[0-9a-fA-F]+|\d+)$")

def parse_operand(tok: str) -> Operand:
    t = tok.strip()
    if t.startswith("["):
        m = MEM_RE.match(t)
        if not m:
            raise EmulatorError(f"Operando de memoria inválido: '{tok}'")
        return Mem(Reg(normalize_reg(m.group("base"))), int(m.group("off") or "0", 0), m.group("wb") == "!")
    if t.startswith("#"):
        return Imm(int(t[1:].strip(), 0))
    m = SHIFT_RE.match(t)
    if m:
        return Shift(m.group("kind").lower(), int(m.group("amt")))
    if is_reg(t):
        return Reg(normalize_reg(t))
    if INT_RE.match(t):
        return Imm(int(t, 0))
    return Sym(t)

# ---- Memoria ----

class Memory:
    """Regiones contiguas mapeadas; cualquier acceso fuera de ellas es un error."""

    def __init__(self):
        self.regions: List[Tuple[int, bytearray]] = []

    def map(self, base: int, size: int):
        self.regions.append((base, bytearray(size)))

    def _find(self, addr: int, n: int) -> Tuple[bytearray, int]:
        for base, buf in self.regions:
            if base <= addr and addr + n <= base + len(buf):
                return buf, addr - base
        raise EmulatorError(f"Acceso a memoria no mapeada: {addr:#x} ({n} bytes)")

    def read(self, addr: int, n: int) -> bytes:
        buf, off = self._find(addr, n)
        return bytes(buf[off:off + n])

    def write(self, addr: int, data: bytes):
        buf, off = self._find(addr, len(data))
        buf[off:off + len(data)] = data

    def read_int(self, addr: int, n: int) -> int:
        return int.from_bytes(self.read(addr, n), "little")

    def write_int(self, addr: int, value: int, n: int):
        self.write(addr, (value & ((1 << (8 * n)) - 1)).to_bytes(n, "little"))

@dataclass(frozen=True)
class RunResult:
    stdout: bytes
    stderr: bytes
    exit_code: int
    steps: int

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

# ---- Máquina ----

class Machine:
    def __init__(self, link: LinkResult, *, counter: int = DEFAULT_COUNTER,
                 max_steps: int = DEFAULT_MAX_STEPS):
        self.link = link
        self.code: List[AsmInstr] = expand(link.code)
        self._decoded: Dict[int, Tuple[Operand, ...]] = {}
        self.x = [0] * 31
        self.sp = STACK_TOP
        self.n = self.z = self.c = self.v = False
        self.pc = 0
        self.steps = 0
        self.counter = counter
        self.max_steps = max_steps
        self.exit_code: Optional[int] = None
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.mem = Memory()
        self.mem.map(STACK_TOP - STACK_SIZE, STACK_SIZE)
        if link.data:
            self.mem.map(link.data_base, len(link.data))
            self.mem.write(link.data_base, link.data)
        self._next_mmap = MMAP_BASE
        self._handlers: Dict[str, Callable[[AsmInstr, Tuple[Operand, ...]], None]] = {
            "mov": self._mov, "add": self._arith, "adds": self._arith,
            "sub": self._arith, "subs": self._arith,
            "and": self._logic, "ands": self._logic, "orr": self._logic,
            "orn": self._logic, "eor": self._logic,
            "mul": self._mul, "udiv": self._div, "sdiv": self._div,
            "msub": self._madd, "madd": self._madd,
            "ldr": self._load, "ldrb": self._load, "str": self._store, "strb": self._store,
            "ldp": self._load_pair, "stp": self._store_pair,
            "adr": self._adr, "b": self._branch, "cbz": self._cbz, "cbnz": self._cbz,
            "mrs": self._mrs, "svc": self._svc, "nop": lambda ins, ops: None,
        }

    # ---- registros ----

    def get(self, op: Operand) -> int:
        if isinstance(op, Imm):
            return u64(op.value)
        if not isinstance(op, Reg):
            raise EmulatorError(f"Se esperaba registro o inmediato, obtuve {op!r}")
        name = op.name
        if name in ("xzr", "wzr"):
            return 0
        if name == "sp":
            return self.sp
        val = self.x[int(name[1:])]
        return val if op.wide else val & U32_MASK

    def set(self, op: Operand, value: int):
        if not isinstance(op, Reg):
            raise EmulatorError(f"Destino inválido: {op!r}")
        name = op.name
        if name in ("xzr", "wzr"):
            return
        if name == "sp":
            self.sp = u64(value)
            return
        self.x[int(name[1:])] = u64(value) if op.wide else value & U32_MASK

    def _op2(self, ops: Tuple[Operand, ...], i: int, width: int) -> int:
        val = self.get(ops[i])
        if len(ops) > i + 1 and isinstance(ops[i + 1], Shift):
            sh: Shift = ops[i + 1]  # type: ignore[assignment]
            mask = (1 << width) - 1
            if sh.kind == "lsl":
                val = (val << sh.amount) & mask
            elif sh.kind == "lsr":
                val = (val & mask) >> sh.amount
            else:
                sign = val >> (width - 1) & 1
                val = ((val & mask) >> sh.amount) | ((mask << (width - sh.amount)) & mask if sign else 0)
        return val

    @staticmethod
    def _width(op: Operand) -> int:
        return 64 if isinstance(op, Reg) and op.wide else 32

    def _target(self, op: Operand) -> int:
        if not isinstance(op, Sym):
            raise EmulatorError(f"Se esperaba etiqueta, obtuve {op!r}")
        addr = self.link.symtab.get(op.name)
        if addr is None:
            raise EmulatorError(f"Etiqueta no definida: {op.name}")
        return addr

    def _jump(self, op: Operand):
        self.pc = self.link.index_of(self._target(op))

    # ---- instrucciones ----

    def _mov(self, ins, ops):
        self.set(ops[0], self.get(ops[1]))

    def _arith(self, ins, ops):
        width = self._width(ops[0])
        mask = (1 << width) - 1
        a = self.get(ops[1]) & mask
        b = self._op2(ops, 2, width) & mask
        if ins.mnemonic.startswith("sub"):
            res = (a - b) & mask
            carry = a >= b
            overflow = bool(((a ^ b) & (a ^ res)) >> (width - 1) & 1)
        else:
            full = a + b
            res = full & mask
            carry = full > mask
            overflow = bool((~(a ^ b) & (a ^ res)) >> (width - 1) & 1)
        if ins.mnemonic.endswith("s"):
            self.n = bool(res >> (width - 1) & 1)
            self.z = res == 0
            self.c = carry
            self.v = overflow
        self.set(ops[0], res)

    def _logic(self, ins, ops):
        width = self._width(ops[0])
        mask = (1 << width) - 1
        a = self.get(ops[1]) & mask
        b = self._op2(ops, 2, width) & mask
        m = ins.mnemonic
        if m.startswith("and"):
            res = a & b
        elif m == "orr":
            res = a | b
        elif m == "orn":
            res = a | (~b & mask)
        else:
            res = a ^ b
        if m == "ands":
            self.n = bool(res >> (width - 1) & 1)
            self.z = res == 0
            self.c = self.v = False
        self.set(ops[0], res)

    def _mul(self, ins, ops):
        self.set(ops[0], self.get(ops[1]) * self.get(ops[2]))

    def _div(self, ins, ops):
        a, b = self.get(ops[1]), self.get(ops[2])
        if b == 0:
            self.set(ops[0], 0)
        elif ins.mnemonic == "udiv":
            self.set(ops[0], a // b)
        else:
            sa, sb = s64(a), s64(b)
            q = abs(sa) // abs(sb)
            self.set(ops[0], q if (sa < 0) == (sb < 0) else -q)

    def _madd(self, ins, ops):
        prod = self.get(ops[1]) * self.get(ops[2])
        acc = self.get(ops[3])
        self.set(ops[0], acc - prod if ins.mnemonic == "msub" else acc + prod)

    def _address(self, ops: Tuple[Operand, ...], i: int) -> int:
        """Dirección efectiva del operando de memoria ops[i]; aplica pre/post-indexado."""
        mem = ops[i]
        if isinstance(mem, Sym):
            return self._target(mem)
        if not isinstance(mem, Mem):
            raise EmulatorError(f"Operando de memoria inválido: {mem!r}")
        base = self.get(mem.base)
        if len(ops) > i + 1 and isinstance(ops[i + 1], Imm):
            # post-indexado: [base], #imm
            self.set(mem.base, base + ops[i + 1].value)  # type: ignore[union-attr]
            return base
        addr = u64(base + mem.offset)
        if mem.writeback:
            self.set(mem.base, addr)
        return addr

    def _size(self, ins: AsmInstr, reg: Operand) -> int:
        if ins.mnemonic.endswith("b"):
            return 1
        return 8 if isinstance(reg, Reg) and reg.wide else 4

    def _load(self, ins, ops):
        n = self._size(ins, ops[0])
        self.set(ops[0], self.mem.read_int(self._address(ops, 1), n))

    def _store(self, ins, ops):
        n = self._size(ins, ops[0])
        val = self.get(ops[0])
        self.mem.write_int(self._address(ops, 1), val, n)

    def _load_pair(self, ins, ops):
        n = self._size(ins, ops[0])
        addr = self._address(ops, 2)
        self.set(ops[0], self.mem.read_int(addr, n))
        self.set(ops[1], self.mem.read_int(addr + n, n))

    def _store_pair(self, ins, ops):
        n = self._size(ins, ops[0])
        a, b = self.get(ops[0]), self.get(ops[1])
        addr = self._address(ops, 2)
        self.mem.write_int(addr, a, n)
        self.mem.write_int(addr + n, b, n)

    def _adr(self, ins, ops):
        self.set(ops[0], self._target(ops[1]))

    def _branch(self, ins, ops):
        self._jump(ops[0])

    def _cbz(self, ins, ops):
        zero = self.get(ops[0]) == 0
        if zero == (ins.mnemonic == "cbz"):
            self._jump(ops[1])

    def _mrs(self, ins, ops):
        if not isinstance(ops[1], Sym) or ops[1].name.lower() != "cntvct_el0":
            raise EmulatorError(f"Registro de sistema no soportado: {ins.operands[1]}")
        self.set(ops[0], self.counter + self.steps)

    def _svc(self, ins, ops):
        nr = self.x[8]
        if nr == isa.SYS_WRITE:
            fd, buf, count = self.x[0], self.x[1], self.x[2]
            data = self.mem.read(buf, count)
            if fd == isa.STDOUT:
                self.stdout.extend(data)
            elif fd == isa.STDERR:
                self.stderr.extend(data)
            else:
                raise EmulatorError(f"write a descriptor no soportado: {fd}")
            self.x[0] = count
        elif nr in (isa.SYS_EXIT, isa.SYS_EXIT_GROUP):
            self.exit_code = self.x[0] & 0xFF
        elif nr == isa.SYS_MMAP:
            size = (self.x[1] + PAGE - 1) // PAGE * PAGE
            base = self._next_mmap
            self.mem.map(base, size)
            self._next_mmap += size + PAGE
            self.x[0] = base
        else:
            raise EmulatorError(f"Syscall no soportada: {nr}")

    # ---- bucle principal ----

    def _decode(self, idx: int) -> Tuple[Operand, ...]:
        ops = self._decoded.get(idx)
        if ops is None:
            ops = tuple(parse_operand(o) for o in self.code[idx].operands)
            self._decoded[idx] = ops
        return ops

    def step(self):
        if not 0 <= self.pc < len(self.code):
            raise EmulatorError("El programa salió de .text sin llamar a exit")
        ins = self.code[self.pc]
        ops = self._decode(self.pc)
        self.pc += 1
        m = ins.mnemonic
        if m.startswith("b."):
            try:
                taken = isa.holds(m[2:], self.n, self.z, self.c, self.v)
            except KeyError:
                raise EmulatorError(f"Condición desconocida: {m} (línea {ins.line})") from None
            if taken:
                self._jump(ops[0])
        else:
            handler = self._handlers.get(m)
            if handler is None:
                raise EmulatorError(f"Instrucción no soportada: {m} (línea {ins.line})")
            handler(ins, ops)
        self.steps += 1

    def run(self) -> RunResult:
        while self.exit_code is None:
            if self.steps >= self.max_steps:
                raise EmulatorError(f"Se superó el límite de {self.max_steps} pasos")
            self.step()
        return RunResult(bytes(self.stdout), bytes(self.stderr), self.exit_code, self.steps)

def run(text: str, *, counter: int = DEFAULT_COUNTER, max_steps: int = DEFAULT_MAX_STEPS) -> RunResult:
    """Enlaza y ejecuta el texto ensamblador; EmulatorError si no se puede."""
    link = first_pass(text)
    errors = [d for d in link.diagnostics if d.severity == "error"]
    if errors:
        raise EmulatorError(str(errors[0]))
    return Machine(link, counter=counter, max_steps=max_steps).run()
