'''
lexer de H@mer: texto fuente -> tokens (cursor con un carácter de lookahead)
'''

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

class TokenKind(Enum):
    # Palabras clave
    GET = "Get"
    CLASS = "class"
    NEW = "new"
    LOCAL = "local"
    PRINT = "print"
    REST = "rest"
    IF = "if"
    THEN = "then"
    WHILE = "while"
    DO = "do"
    IS = "is"
    DONE = "done"
    # Puntuación y operadores
    AT = "@"
    QUEST = "?"
    PERCENT = "%"
    COMMA = ","
    DOT = "."
    LBRACKET = "["
    RBRACKET = "]"
    GREATER = ">"
    LESS = "<"
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    ASSIGN = "="
    EQUAL = "=="
    # Con carga
    IDENT = "identifier"
    NUMBER = "number"
    STRING = "string"
    EOF = "eof"

# Tabla de palabras clave (sensible a mayúsculas: 'Get' sí, 'get' es identificador)
KEYWORDS: Dict[str, TokenKind] = {
    k.value: k for k in (
        TokenKind.GET, TokenKind.CLASS, TokenKind.NEW, TokenKind.LOCAL,
        TokenKind.PRINT, TokenKind.REST, TokenKind.IF, TokenKind.THEN,
        TokenKind.WHILE, TokenKind.DO, TokenKind.IS, TokenKind.DONE,
    )
}

SINGLE_CHAR: Dict[str, TokenKind] = {
    k.value: k for k in (
        TokenKind.QUEST, TokenKind.PERCENT, TokenKind.AT, TokenKind.COMMA,
        TokenKind.DOT, TokenKind.LBRACKET, TokenKind.RBRACKET, TokenKind.GREATER,
        TokenKind.LESS, TokenKind.PLUS, TokenKind.MINUS, TokenKind.STAR,
        TokenKind.SLASH,
    )
}

@dataclass(frozen=True)
class Token:
    """Token con su clase y, para IDENT/NUMBER/STRING, su valor.

    El valor de NUMBER es siempre float; quien lo consume lo trunca a entero.
    La línea sólo sirve para diagnósticos y no participa en la igualdad.
    """
    kind: TokenKind
    value: Union[str, float, None] = None
    line: Optional[int] = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.value is None:
            return self.kind.value
        return f"{self.kind.value}({self.value!r})"

EOF_TOKEN = Token(TokenKind.EOF)

def _is_ident_start(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_"

def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"

def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"

def parse_number(text: str) -> float:
    """Convierte una secuencia de dígitos y puntos; 0.0 si no es un número válido."""
    try:
        return float(text)
    except ValueError:
        return 0.0

class Lexer:
    """Cursor sobre el texto fuente; next_token() devuelve un token cada vez.

    Los caracteres que ninguna regla reconoce se saltan en silencio. Una vez
    alcanzado el final, next_token() devuelve EOF indefinidamente.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.line = 1
        self._line_pos = 0

    def _peek(self, ahead: int = 0) -> Optional[str]:
        i = self.pos + ahead
        return self.text[i] if i < len(self.text) else None

    def _sync_line(self) -> int:
        self.line += self.text.count("\n", self._line_pos, self.pos)
        self._line_pos = self.pos
        return self.line

    def next_token(self) -> Token:
        while True:
            self._skip_whitespace()
            line = self._sync_line()
            ch = self._peek()
            if ch is None:
                return Token(TokenKind.EOF, line=line)
            if ch in SINGLE_CHAR:
                self.pos += 1
                return Token(SINGLE_CHAR[ch], line=line)
            if ch == "=":
                self.pos += 1
                if self._peek() == "=":
                    self.pos += 1
                    return Token(TokenKind.EQUAL, line=line)
                return Token(TokenKind.ASSIGN, line=line)
            if ch == '"':
                return self._lex_string(line)
            if _is_digit(ch):
                return self._lex_number(line)
            if _is_ident_start(ch):
                return self._lex_identifier(line)
            # carácter desconocido: se ignora
            self.pos += 1

    def _take_while(self, pred) -> str:
        start = self.pos
        while self.pos < len(self.text) and pred(self.text[self.pos]):
            self.pos += 1
        return self.text[start:self.pos]

    def _lex_identifier(self, line: int) -> Token:
        ident = self._take_while(_is_ident_char)
        kw = KEYWORDS.get(ident)
        if kw is not None:
            return Token(kw, line=line)
        return Token(TokenKind.IDENT, ident, line)

    def _lex_number(self, line: int) -> Token:
        raw = self._take_while(lambda c: _is_digit(c) or c == ".")
        return Token(TokenKind.NUMBER, parse_number(raw), line)

    def _lex_string(self, line: int) -> Token:
        self.pos += 1  # comilla de apertura
        s = self._take_while(lambda c: c != '"')
        self.pos += 1  # comilla de cierre (o fin de texto)
        return Token(TokenKind.STRING, s, line)

    def _skip_whitespace(self):
        self._take_while(str.isspace)

def tokenize(text: str) -> List[Token]:
    """Tokeniza el texto completo; la lista termina con exactamente un EOF."""
    lexer = Lexer(text)
    tokens: List[Token] = []
    while True:
        tok = lexer.next_token()
        tokens.append(tok)
        if tok.kind is TokenKind.EOF:
            return tokens
