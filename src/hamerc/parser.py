# src/hamerc/parser.py
from __future__ import annotations
from pathlib import Path as FsPath
from typing import List, Optional, Tuple

from .lexer import Token, TokenKind, EOF_TOKEN, KEYWORDS
from .ast import (
    Path, Stmt, NOP,
    Declare, ClassDef, HeapAlloc, Assign, Update, PrintVar, PrintStr,
    If, ChaosIf, While, RawAsm, IntelAsm, Script, ModuleSource,
)
from .options import Options, DEFAULT_OPTIONS
from .diagnostics import Diagnostic, warning
from .utils import format_number

# Nombre usado por 'Get' cuando no le sigue un identificador
DEFAULT_MODULE = "lib"

# Dentro de un bloque @ las palabras clave (salvo done) se re-serializan tal cual
KEYWORD_KINDS = frozenset(KEYWORDS.values())

def load_module(name: str, options: Options = DEFAULT_OPTIONS) -> Optional[str]:
    """Lee '<name><ext>' del primer directorio de include_paths que lo tenga."""
    fname = f"{name}{options.module_ext}"
    for d in options.include_paths:
        try:
            return (FsPath(d) / fname).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
    return None

class Parser:
    """Descenso recursivo con un token de lookahead, sin retroceso.

    Leer más allá del final devuelve siempre el EOF final. Las formas mal escritas
    se convierten en 'nop' (y una advertencia); nunca se lanza una excepción.
    """

    def __init__(self, tokens: List[Token], *, filename: Optional[str] = None,
                 options: Optional[Options] = None):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].kind is not TokenKind.EOF:
            self.tokens.append(EOF_TOKEN)
        self.pos = 0
        self.filename = filename
        self.options = options or DEFAULT_OPTIONS
        self.diagnostics: List[Diagnostic] = []

    # ---- cursor ----

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def at(self, *kinds: TokenKind) -> bool:
        return self.peek().kind in kinds

    def advance(self) -> Token:
        t = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return t

    def skip(self, *kinds: TokenKind):
        while self.at(*kinds):
            self.advance()

    def _ident(self, default: str = "") -> str:
        t = self.advance()
        return t.value if t.kind is TokenKind.IDENT else default  # type: ignore[return-value]

    def _number(self) -> float:
        t = self.advance()
        return t.value if t.kind is TokenKind.NUMBER else 0.0  # type: ignore[return-value]

    def _warn(self, message: str, tok: Token, hint: Optional[str] = None):
        self.diagnostics.append(warning(message, line=tok.line, file=self.filename, hint=hint))

    # ---- gramática ----

    def parse_program(self) -> List[Stmt]:
        stmts: List[Stmt] = []
        while not self.at(TokenKind.EOF):
            stmts.append(self.parse_statement())
        return stmts

    def parse_block(self) -> Tuple[Stmt, ...]:
        """Sentencias hasta 'done' (o fin de entrada); consume el 'done'."""
        body: List[Stmt] = []
        while not self.at(TokenKind.DONE, TokenKind.EOF):
            body.append(self.parse_statement())
        if self.at(TokenKind.DONE):
            self.advance()
        return tuple(body)

    def parse_path(self) -> Path:
        parts: List[str] = []
        if self.at(TokenKind.IDENT):
            parts.append(self.advance().value)  # type: ignore[arg-type]
            while self.at(TokenKind.DOT):
                self.advance()
                t = self.advance()
                if t.kind is TokenKind.IDENT:
                    parts.append(t.value)  # type: ignore[arg-type]
        return Path(tuple(parts))

    def parse_statement(self) -> Stmt:
        k = self.peek().kind
        if k is TokenKind.GET:
            return self._parse_get()
        if k is TokenKind.AT:
            return self._parse_at_block()
        if k is TokenKind.LOCAL:
            return self._parse_local()
        if k is TokenKind.CLASS:
            return self._parse_class()
        if k is TokenKind.PRINT:
            return self._parse_print()
        if k is TokenKind.IF:
            return self._parse_if()
        if k is TokenKind.WHILE:
            return self._parse_while()
        return self._parse_assignment()

    def _parse_get(self) -> Stmt:
        get = self.advance()
        name = self._ident(DEFAULT_MODULE)
        text = load_module(name, self.options)
        fname = f"{name}{self.options.module_ext}"
        if text is None:
            self._warn(f"No se pudo leer el módulo {fname}", get,
                       hint="se busca en " + ", ".join(self.options.include_paths))
            return RawAsm(f"// Error: Could not read {fname}")
        return ModuleSource(name, text)

    def _parse_at_block(self) -> Stmt:
        at = self.advance()
        t = self.peek()
        kind = t.value if t.kind is TokenKind.IDENT else None
        if kind not in ("asm", "intel", "python"):
            self._warn(f"Bloque @ desconocido: {t}", at, hint="se esperaba @asm, @intel o @python")
            if t.kind is TokenKind.IDENT:
                self.advance()
            return NOP
        self.advance()
        if self.at(TokenKind.IS):
            self.advance()
        parts: List[str] = []
        while not self.at(TokenKind.DONE, TokenKind.EOF):
            tok = self.advance()
            if tok.kind is TokenKind.IDENT:
                parts.append(f"{tok.value} ")
            elif tok.kind in KEYWORD_KINDS:
                parts.append(f"{tok.kind.value} ")
            elif tok.kind is TokenKind.NUMBER:
                prefix = "#" if kind == "asm" else ""
                parts.append(f"{prefix}{format_number(tok.value)} ")  # type: ignore[arg-type]
            elif tok.kind is TokenKind.COMMA and kind != "python":
                parts.append(", ")
            elif tok.kind is TokenKind.STRING and kind == "python":
                parts.append(f'"{tok.value}" ')
            elif tok.kind is TokenKind.LBRACKET and kind == "intel":
                parts.append("[ ")
            elif tok.kind is TokenKind.RBRACKET and kind == "intel":
                parts.append("] ")
        if self.at(TokenKind.DONE):
            self.advance()
        code = "".join(parts)
        if kind == "asm":
            return RawAsm(code)
        if kind == "intel":
            return IntelAsm(code)
        return Script(code)

    def _parse_local(self) -> Stmt:
        self.advance()
        name = self._ident()
        if self.at(TokenKind.ASSIGN):
            self.advance()
        if self.at(TokenKind.NEW):
            self.advance()
            return HeapAlloc(name, self._ident())
        return Declare(name, self._number())

    def _parse_class(self) -> Stmt:
        self.advance()
        name = self._ident()
        if self.at(TokenKind.IS):
            self.advance()
        fields: List[str] = []
        while not self.at(TokenKind.DONE, TokenKind.EOF):
            t = self.advance()
            if t.kind is TokenKind.IDENT:
                fields.append(t.value)  # type: ignore[arg-type]
        if self.at(TokenKind.DONE):
            self.advance()
        return ClassDef(name, tuple(fields))

    def _parse_print(self) -> Stmt:
        kw = self.advance()
        if self.at(TokenKind.STRING):
            return PrintStr(self.advance().value)  # type: ignore[arg-type]
        path = self.parse_path()
        if not path:
            self._warn("print sin variable ni cadena", kw)
            return NOP
        return PrintVar(path)

    def _parse_condition(self) -> Tuple[Path, TokenKind, float]:
        path = self.parse_path()
        op = self.advance().kind
        value = self._number()
        return path, op, value

    def _drop_conditional(self, kw: Token, opener: TokenKind) -> Stmt:
        """Condición sin variable: se descarta hasta el cuerpo y el bloque entero queda en nop."""
        self._warn(f"{kw} sin variable en la condición", kw, hint="se ignora el bloque")
        while not self.at(opener, TokenKind.IS, TokenKind.DONE, TokenKind.EOF):
            self.advance()
        self.skip(opener, TokenKind.IS)
        self.parse_block()
        return NOP

    def _parse_if(self) -> Stmt:
        kw = self.advance()
        if self.at(TokenKind.QUEST):
            self.advance()
            self.skip(TokenKind.LESS, TokenKind.PERCENT)
            chance = self._number()
            self.skip(TokenKind.GREATER, TokenKind.PERCENT, TokenKind.IS, TokenKind.THEN)
            return ChaosIf(chance, self.parse_block())
        if not self.at(TokenKind.IDENT):
            return self._drop_conditional(kw, TokenKind.THEN)
        path, op, value = self._parse_condition()
        self.skip(TokenKind.THEN, TokenKind.IS)
        return If(path, op, value, self.parse_block())

    def _parse_while(self) -> Stmt:
        kw = self.advance()
        if not self.at(TokenKind.IDENT):
            return self._drop_conditional(kw, TokenKind.DO)
        path, op, value = self._parse_condition()
        self.skip(TokenKind.DO, TokenKind.IS)
        return While(path, op, value, self.parse_block())

    def _parse_assignment(self) -> Stmt:
        start = self.peek()
        path = self.parse_path()
        if not path:
            self.advance()
            self._warn(f"Token inesperado: {start}", start)
            return NOP
        if not self.at(TokenKind.ASSIGN):
            self._warn(f"Sentencia sin efecto: {path}", start)
            return NOP
        self.advance()
        if self.at(TokenKind.NUMBER):
            return Assign(path, self._number())
        # ruta = ruta <op> número; la ruta repetida se descarta
        self.parse_path()
        op = self.advance().kind
        return Update(path, op, self._number())

def parse(tokens: List[Token], *, filename: Optional[str] = None,
          options: Optional[Options] = None) -> Tuple[List[Stmt], List[Diagnostic]]:
    """
    Devuelve (stmts, diagnostics) a partir de la lista de tokens.

    Reglas:
      - Get <módulo>: lee '<módulo>.hmr' y guarda el texto crudo (ModuleSource);
        si no se puede leer queda un comentario y una advertencia.
      - @asm / @intel / @python ... done: re-serializa los tokens del bloque.
      - local x = N | local x = new Clase
      - class C is campos... done
      - print "texto" | print ruta
      - if ruta op N then ... done | if ? N then ... done
      - while ruta op N do ... done
      - ruta = N | ruta = ruta op N
    """
    p = Parser(tokens, filename=filename, options=options)
    stmts = p.parse_program()
    return stmts, p.diagnostics
