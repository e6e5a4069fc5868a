from __future__ import annotations
import argparse, sys
from dataclasses import dataclass
from typing import List, Optional

from .lexer import tokenize
from .parser import parse
from .generator import generate
from .options import Options, DEFAULT_HEAP_SIZE, DEFAULT_OUTPUT
from .diagnostics import CompileError, Diagnostic
from .emulator import EmulatorError, run
from .writers import write_asm, format_diagnostics

@dataclass(frozen=True)
class CompileResult:
    asm: str
    diagnostics: List[Diagnostic]

def _progress(enabled: bool, msg: str):
    if enabled:
        print(msg)

def compile_text(text: str, *, filename: str | None = None, options: Optional[Options] = None,
                 verbose: bool = False) -> CompileResult:
    """Lexer -> parser -> generador. Devuelve el ensamblador y los diagnósticos.
    Lanza CompileError ante un error fatal (script externo, inclusión cíclica, registros)."""
    _progress(verbose, "[H@mer] Tokenizing...")
    tokens = tokenize(text)
    _progress(verbose, "[H@mer] Parsing AST...")
    stmts, diags_parse = parse(tokens, filename=filename, options=options)
    _progress(verbose, "[H@mer] Generating ARM64 Assembly...")
    gen = generate(stmts, filename=filename, options=options)
    return CompileResult(asm=gen.text, diagnostics=list(diags_parse) + list(gen.diagnostics))

def compile_file(path: str, *, options: Optional[Options] = None, verbose: bool = False) -> CompileResult:
    """Como compile_text, leyendo el archivo fuente (OSError si no se puede leer)."""
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return compile_text(text, filename=path, options=options, verbose=verbose)

def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="hamerc", description="H@mer -> ensamblador AArch64 (Linux)")
    ap.add_argument("source", help="archivo .hmr de entrada")
    ap.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="archivo .s de salida (por defecto out.s)")
    ap.add_argument("--heap-size", type=int, default=DEFAULT_HEAP_SIZE, help="bytes de la arena (mmap)")
    ap.add_argument("-I", "--include", action="append", default=[], metavar="DIR",
                    help="directorio adicional para módulos Get (se busca después de '.')")
    ap.add_argument("--interpreter", default="python3", help="intérprete para bloques @python")
    ap.add_argument("--run", action="store_true", help="ejecutar el resultado en el emulador")
    ap.add_argument("-q", "--quiet", action="store_true", help="sin mensajes de progreso")
    args = ap.parse_args(argv)

    options = Options(
        heap_size=args.heap_size,
        include_paths=tuple(["."] + args.include),
        interpreter=(args.interpreter, "-c"),
        output=args.output,
    )
    verbose = not args.quiet

    try:
        res = compile_file(args.source, options=options, verbose=verbose)
    except (OSError, UnicodeDecodeError) as ex:
        print(f"ERROR: no pude leer {args.source}: {ex}", file=sys.stderr)
        return 2
    except CompileError as ex:
        print(ex.diagnostic, file=sys.stderr)
        return 1

    # las advertencias se imprimen; sólo un error impide escribir la salida
    for line in format_diagnostics(res.diagnostics):
        print(line, file=sys.stderr)
    if any(d.severity == "error" for d in res.diagnostics):
        return 1

    try:
        write_asm(res.asm, options.output)
    except Exception as ex:
        print(f"ERROR al escribir salidas: {ex}", file=sys.stderr)
        return 3

    _progress(verbose, f"[SUCCESS] compiled {args.source} to {options.output}")
    if args.run:
        try:
            result = run(res.asm)
        except EmulatorError as ex:
            print(f"ERROR en el emulador: {ex}", file=sys.stderr)
            return 4
        sys.stdout.write(result.text)
        _progress(verbose, f"[H@mer] exit code {result.exit_code}")
        return result.exit_code
    _progress(verbose, "Next steps:")
    _progress(verbose, f"  as {options.output} -o out.o")
    _progress(verbose, "  ld out.o -o hamer_prog")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
