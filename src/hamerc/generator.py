# src/hamerc/generator.py
'''
generador de código: AST de H@mer -> texto ensamblador AArch64 (Linux, svc)
'''
from __future__ import annotations
import subprocess
from pathlib import Path as FsPath
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from . import isa, regs
from .ast import (
    Path, Stmt,
    Declare, ClassDef, HeapAlloc, Assign, Update, PrintVar, PrintStr,
    If, ChaosIf, While, RawAsm, IntelAsm, Script, ModuleSource,
)
from .diagnostics import Diagnostic, fatal, warning
from .isa import SYS_WRITE, SYS_EXIT, SYS_MMAP, PROT_READ_WRITE, MAP_PRIVATE_ANON, STDOUT
from .lexer import TokenKind, tokenize
from .options import Options, DEFAULT_OPTIONS
from .parser import parse
from .regs import RegisterAllocator
from .utils import GOLDEN_GAMMA, format_number, to_hex64, truncate_number

# Cada campo ocupa un slot fijo de 8 bytes
FIELD_SIZE = 8

# Bytes reservados al inicio de la arena para el estado por defecto de la Chaos Roll
CHAOS_BLOCK = 16
CHAOS_SLOT = 8
CHAOS_SYMBOL = "math"

@dataclass(frozen=True)
class FallbackPolicy:
    """Valores que se usan cuando una referencia no se puede resolver.

    - register: variable desconocida
    - offset: clase o campo desconocidos en una ruta
    - chaos_register: 'math' sin ligar en una Chaos Roll (su slot +8 es el estado)
    """
    register: str = "x0"
    offset: int = 0
    chaos_register: str = regs.CHAOS_STATE

FALLBACK = FallbackPolicy()

# Condición que salta el cuerpo: la negación de la comparación del fuente
SKIP_BRANCH: Dict[TokenKind, str] = {
    TokenKind.EQUAL: isa.negate("eq"),
    TokenKind.GREATER: isa.negate("gt"),
    TokenKind.LESS: isa.negate("lt"),
}
DEFAULT_SKIP_BRANCH = "eq"

UPDATE_MNEMONIC: Dict[TokenKind, str] = {
    TokenKind.PLUS: "add",
    TokenKind.MINUS: "sub",
}

class ClassLayouts:
    """Tabla clase -> campos; el campo N vive en el offset N*8."""

    def __init__(self):
        self.classes: Dict[str, Tuple[str, ...]] = {}

    def define(self, name: str, fields: Tuple[str, ...]):
        self.classes[name] = tuple(fields)

    def size(self, name: str) -> Optional[int]:
        fields = self.classes.get(name)
        return None if fields is None else len(fields) * FIELD_SIZE

    def offset(self, class_name: str, field_name: str) -> Optional[int]:
        fields = self.classes.get(class_name)
        if fields is None or field_name not in fields:
            return None
        return fields.index(field_name) * FIELD_SIZE

@dataclass
class CodegenContext:
    """Estado mutable de una compilación, compartido con los módulos incluidos."""
    options: Options = DEFAULT_OPTIONS
    filename: Optional[str] = None
    symbols: Dict[str, str] = field(default_factory=dict)
    layouts: ClassLayouts = field(default_factory=ClassLayouts)
    obj_types: Dict[str, str] = field(default_factory=dict)
    regs: RegisterAllocator = field(default_factory=RegisterAllocator)
    next_label: int = 0
    include_stack: List[str] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def label(self) -> int:
        n = self.next_label
        self.next_label += 1
        return n

    def emit(self, *instrs: str):
        for ins in instrs:
            self.lines.append(f"    {ins}")

    def raw(self, *lines: str):
        self.lines.extend(lines)

    def warn(self, message: str, hint: Optional[str] = None):
        self.diagnostics.append(warning(message, file=self.filename, hint=hint))

@dataclass(frozen=True)
class GenResult:
    text: str
    diagnostics: List[Diagnostic]
    context: CodegenContext

# ---------- Rutas ----------

def resolve_path(ctx: CodegenContext, path: Path) -> Tuple[str, Optional[int]]:
    """Devuelve (registro, offset); offset es None si la ruta no nombra campo."""
    reg = ctx.symbols.get(path.base)
    if reg is None:
        ctx.warn(f"Variable desconocida: {path.base}", hint=f"se usa {FALLBACK.register}")
        reg = FALLBACK.register
    if path.field is None:
        return reg, None
    class_name = ctx.obj_types.get(path.base)
    off = None if class_name is None else ctx.layouts.offset(class_name, path.field)
    if off is None:
        ctx.warn(f"Campo no resuelto: {path}", hint=f"se usa el offset {FALLBACK.offset}")
        off = FALLBACK.offset
    return reg, off

def _load_scratch(ctx: CodegenContext, path: Path):
    reg, off = resolve_path(ctx, path)
    if off is None:
        ctx.emit(f"mov {regs.SCRATCH}, {reg}")
    else:
        ctx.emit(f"ldr {regs.SCRATCH}, {isa.mem(reg, off)}")

# ---------- Prólogo / epílogo ----------

def prologue(ctx: CodegenContext):
    ctx.raw(".global _start", ".section .text", "", "_start:")
    ctx.emit(f"mov {regs.TEN}, #10")
    # mmap(NULL, heap_size, PROT_READ|PROT_WRITE, MAP_PRIVATE|MAP_ANONYMOUS, -1, 0)
    ctx.emit("mov x0, #0")
    ctx.emit(*isa.mov_imm("x1", ctx.options.heap_size))
    ctx.emit(f"mov x2, #{PROT_READ_WRITE}",
             f"mov x3, #{MAP_PRIVATE_ANON}",
             "mov x4, #-1",
             "mov x5, #0",
             f"mov {regs.SYSCALL_NR}, #{SYS_MMAP}",
             "svc #0",
             f"mov {regs.BUMP}, x0",
             f"mov {regs.CHAOS_STATE}, {regs.BUMP}",
             f"add {regs.BUMP}, {regs.BUMP}, #{CHAOS_BLOCK}")

def epilogue(ctx: CodegenContext):
    ctx.raw("")
    ctx.emit("mov x0, #0", f"mov {regs.SYSCALL_NR}, #{SYS_EXIT}", "svc #0")

# ---------- Sentencias ----------

def _gen_declare(ctx: CodegenContext, s: Declare):
    reg = ctx.symbols.get(s.name)
    if reg is None:
        reg = ctx.regs.fresh()
        ctx.symbols[s.name] = reg
    ctx.emit(*isa.mov_imm(reg, truncate_number(s.value)))

def _gen_class(ctx: CodegenContext, s: ClassDef):
    ctx.layouts.define(s.name, s.fields)

def _gen_alloc(ctx: CodegenContext, s: HeapAlloc):
    reg = ctx.regs.fresh()
    ctx.symbols[s.var] = reg
    ctx.obj_types[s.var] = s.class_name
    size = ctx.layouts.size(s.class_name)
    ctx.emit(f"mov {reg}, {regs.BUMP}")
    if size is None:
        ctx.warn(f"Clase desconocida: {s.class_name}", hint=f"'{s.var}' apunta a la arena sin reservar espacio")
        return
    if size:
        ctx.emit(*isa.arith_imm("add", regs.BUMP, regs.BUMP, size, scratch=regs.SCRATCH2))

def _gen_assign(ctx: CodegenContext, s: Assign):
    reg, off = resolve_path(ctx, s.path)
    value = truncate_number(s.value)
    if off is None:
        ctx.emit(*isa.mov_imm(reg, value))
    else:
        ctx.emit(*isa.mov_imm(regs.SCRATCH, value))
        ctx.emit(f"str {regs.SCRATCH}, {isa.mem(reg, off)}")

def _gen_update(ctx: CodegenContext, s: Update):
    mnemonic = UPDATE_MNEMONIC.get(s.op)
    if mnemonic is None:
        ctx.warn(f"Operador no soportado en '{s.path} = {s.path} {s.op.value} ...'", hint="se usa suma")
        mnemonic = "add"
    reg, off = resolve_path(ctx, s.path)
    value = truncate_number(s.value)
    if off is None:
        ctx.emit(*isa.arith_imm(mnemonic, reg, reg, value, scratch=regs.SCRATCH2))
    else:
        loc = isa.mem(reg, off)
        ctx.emit(f"ldr {regs.SCRATCH}, {loc}")
        ctx.emit(*isa.arith_imm(mnemonic, regs.SCRATCH, regs.SCRATCH, value, scratch=regs.SCRATCH2))
        ctx.emit(f"str {regs.SCRATCH}, {loc}")

def _skip_condition(ctx: CodegenContext, op: TokenKind) -> str:
    cond = SKIP_BRANCH.get(op)
    if cond is None:
        ctx.warn(f"Comparación no soportada: {op.value}", hint=f"se salta el bloque con b.{DEFAULT_SKIP_BRANCH}")
        cond = DEFAULT_SKIP_BRANCH
    return cond

def _emit_test(ctx: CodegenContext, path: Path, op: TokenKind, value: float, target: str):
    _load_scratch(ctx, path)
    ctx.emit(*isa.cmp_imm(regs.SCRATCH, truncate_number(value), scratch=regs.SCRATCH2))
    ctx.emit(f"b.{_skip_condition(ctx, op)} {target}")

def _gen_if(ctx: CodegenContext, s: If):
    n = ctx.label()
    _emit_test(ctx, s.path, s.op, s.value, f".Lif{n}")
    emit_all(ctx, s.body)
    ctx.raw(f".Lif{n}:")

def _gen_while(ctx: CodegenContext, s: While):
    n = ctx.label()
    ctx.raw(f".Lw_start{n}:")
    _emit_test(ctx, s.path, s.op, s.value, f".Lw_end{n}")
    emit_all(ctx, s.body)
    ctx.emit(f"b .Lw_start{n}")
    ctx.raw(f".Lw_end{n}:")

def _chaos_register(ctx: CodegenContext) -> str:
    reg = ctx.symbols.get(CHAOS_SYMBOL)
    if reg is None:
        return FALLBACK.chaos_register
    size = ctx.layouts.size(ctx.obj_types.get(CHAOS_SYMBOL, ""))
    if size is None or size <= CHAOS_SLOT:
        ctx.warn(f"'{CHAOS_SYMBOL}' no es un objeto con al menos dos campos",
                 hint=f"la Chaos Roll usa [{reg}, #{CHAOS_SLOT}] igualmente")
    return reg

def _gen_chaos(ctx: CodegenContext, s: ChaosIf):
    n = ctx.label()
    state = _chaos_register(ctx)
    x1, x2 = regs.SCRATCH, regs.SCRATCH2
    slot = isa.mem(state, CHAOS_SLOT)
    ctx.raw("")
    ctx.emit(f"// Chaos Roll {format_number(s.chance)}%")
    # estado a cero (primer uso): sembrar con el contador del sistema
    ctx.emit(f"ldr {x1}, {slot}", f"cmp {x1}, #0", f"b.ne .Lskp{n}", f"mrs {x1}, cntvct_el0")
    ctx.raw(f".Lskp{n}:")
    ctx.emit(f"ldr {x2}, ={to_hex64(GOLDEN_GAMMA)}",
             f"mul {x1}, {x1}, {x2}",
             f"eor {x1}, {x1}, {x1}, lsr #33",
             f"str {x1}, {slot}",
             f"and {x1}, {x1}, #0x7FFFFFFFFFFFFFFF",
             f"mov {x2}, #100",
             f"udiv x3, {x1}, {x2}",
             f"msub {x1}, x3, {x2}, {x1}")
    ctx.emit(*isa.cmp_imm(x1, truncate_number(s.chance), scratch=x2))
    ctx.emit(f"b.hs .Lif{n}")
    emit_all(ctx, s.body)
    ctx.raw(f".Lif{n}:")

def _gen_print_var(ctx: CodegenContext, s: PrintVar):
    if s.path.base not in ctx.symbols:
        ctx.warn(f"print de variable desconocida: {s.path.base}", hint="no se emite nada")
        return
    reg, off = resolve_path(ctx, s.path)
    n = ctx.label()
    ctx.raw("")
    ctx.emit("stp x0, x1, [sp, #-16]!")
    if off is None:
        ctx.emit(f"mov x0, {reg}")
    else:
        ctx.emit(f"ldr x0, {isa.mem(reg, off)}")
    # x9 = 1 si el valor es negativo; se imprime el módulo con '-' delante
    ctx.emit("mov x9, #0", "cmp x0, #0", f"b.ge .Lpp{n}", "neg x0, x0", "mov x9, #1")
    ctx.raw(f".Lpp{n}:")
    ctx.emit("sub sp, sp, #32",
             "mov x1, sp",
             "add x1, x1, #31",
             "mov w2, #10",
             "strb w2, [x1]")
    ctx.raw(f".Lp{n}:")
    ctx.emit("sub x1, x1, #1",
             f"udiv x2, x0, {regs.TEN}",
             f"msub x3, x2, {regs.TEN}, x0",
             "add x3, x3, #48",
             "strb w3, [x1]",
             "mov x0, x2",
             f"cbnz x0, .Lp{n}",
             f"cbz x9, .Lps{n}",
             "sub x1, x1, #1",
             "mov w3, #45",
             "strb w3, [x1]")
    ctx.raw(f".Lps{n}:")
    ctx.emit(f"mov x0, #{STDOUT}",
             "mov x2, sp",
             "add x2, x2, #32",
             "sub x2, x2, x1",
             f"mov {regs.SYSCALL_NR}, #{SYS_WRITE}",
             "svc #0",
             "add sp, sp, #32",
             "ldp x0, x1, [sp], #16")

ASCII_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}

def escape_ascii(text: str) -> str:
    """Escapa el texto para una directiva .ascii de una sola línea.

    Los demás caracteres de control van en octal (\\NNN); el resto, UTF-8 tal cual.
    """
    out = []
    for ch in text:
        if ch in ASCII_ESCAPES:
            out.append(ASCII_ESCAPES[ch])
        elif ord(ch) < 0x20 or ch == "\x7f":
            out.append(f"\\{ord(ch):03o}")
        else:
            out.append(ch)
    return "".join(out)

def _gen_print_str(ctx: CodegenContext, s: PrintStr):
    n = ctx.label()
    size = len(s.text.encode("utf-8")) + 1
    ctx.raw("", ".section .data", f'.Lstr{n}: .ascii "{escape_ascii(s.text)}\\n"', ".section .text")
    ctx.emit(f"mov x0, #{STDOUT}", f"adr x1, .Lstr{n}")
    ctx.emit(*isa.mov_imm("x2", size))
    ctx.emit(f"mov {regs.SYSCALL_NR}, #{SYS_WRITE}", "svc #0")

def _gen_raw(ctx: CodegenContext, s: RawAsm):
    ctx.emit(s.text)

def _gen_intel(ctx: CodegenContext, s: IntelAsm):
    ctx.raw("")
    ctx.emit(".intel_syntax noprefix", s.text, ".att_syntax")

def run_script(source: str, options: Options = DEFAULT_OPTIONS) -> str:
    """Ejecuta el intérprete externo y devuelve su stdout; CompileError si falla."""
    cmd = list(options.interpreter) + [source]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as ex:
        raise fatal(f"No se pudo lanzar {options.interpreter[0]}: {ex}") from ex
    if proc.returncode != 0:
        detail = proc.stderr.strip().splitlines()
        raise fatal(f"El script terminó con código {proc.returncode}",
                    hint=detail[-1] if detail else None)
    return proc.stdout

def _gen_script(ctx: CodegenContext, s: Script):
    out = run_script(s.source, ctx.options).strip()
    ctx.raw("")
    lines = out.splitlines() or [""]
    for line in lines:
        ctx.emit(f"// Python Output: {line}")

def _gen_module(ctx: CodegenContext, s: ModuleSource):
    if s.name in ctx.include_stack:
        chain = " -> ".join(ctx.include_stack + [s.name])
        raise fatal(f"Inclusión cíclica: {chain}")
    fname = f"{s.name}{ctx.options.module_ext}"
    stmts, diags = parse(tokenize(s.text), filename=fname, options=ctx.options)
    ctx.diagnostics.extend(diags)
    outer = ctx.filename
    ctx.include_stack.append(s.name)
    ctx.filename = fname
    try:
        emit_all(ctx, stmts)
    finally:
        ctx.include_stack.pop()
        ctx.filename = outer

_EMITTERS: Dict[type, Callable] = {
    Declare: _gen_declare,
    ClassDef: _gen_class,
    HeapAlloc: _gen_alloc,
    Assign: _gen_assign,
    Update: _gen_update,
    PrintVar: _gen_print_var,
    PrintStr: _gen_print_str,
    If: _gen_if,
    ChaosIf: _gen_chaos,
    While: _gen_while,
    RawAsm: _gen_raw,
    IntelAsm: _gen_intel,
    Script: _gen_script,
    ModuleSource: _gen_module,
}

def emit_stmt(ctx: CodegenContext, stmt: Stmt):
    _EMITTERS[type(stmt)](ctx, stmt)

def emit_all(ctx: CodegenContext, stmts):
    for s in stmts:
        emit_stmt(ctx, s)

def module_name(filename: str, options: Options = DEFAULT_OPTIONS) -> str:
    """Nombre con el que 'Get' se referiría al archivo: 'src/main.hmr' -> 'main'."""
    name = FsPath(filename).name
    if name.endswith(options.module_ext):
        name = name[: -len(options.module_ext)]
    return name

def generate(stmts: List[Stmt], *, filename: Optional[str] = None,
             options: Optional[Options] = None) -> GenResult:
    """Emite el programa completo: prólogo, sentencias y epílogo (exit 0).

    Lanza CompileError si un script externo falla, si hay una inclusión cíclica
    o si se agotan los registros.
    """
    ctx = CodegenContext(options=options or DEFAULT_OPTIONS, filename=filename)
    if filename is not None:
        ctx.include_stack.append(module_name(filename, ctx.options))
    prologue(ctx)
    emit_all(ctx, stmts)
    epilogue(ctx)
    return GenResult(text="\n".join(ctx.lines) + "\n", diagnostics=ctx.diagnostics, context=ctx)
