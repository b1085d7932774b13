"""Lexer for the schema definition language."""

import ply.lex as lex

from ..errors import SchemaError


class SchemaLexer:
    """Lexer for tokenizing ``model`` blocks."""

    reserved = {
        "model": "MODEL",
    }

    tokens = [
        "IDENTIFIER",
        "STRING",
        "NUMBER",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
        "COMMA",
        "COLON",
        "QUESTION",
        "AT",
        "ATAT",
    ] + list(reserved.values())

    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COMMA = r","
    t_COLON = r":"
    t_QUESTION = r"\?"
    t_ATAT = r"@@"
    t_AT = r"@"

    t_ignore = " \t\r"

    t_ignore_COMMENT = r"//[^\n]*"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\\n]|\\.)*"'
        t.value = bytes(t.value[1:-1], "utf-8").decode("unicode_escape")
        return t

    def t_NUMBER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+(\.\d+)?"
        t.value = float(t.value) if "." in t.value else int(t.value)
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SchemaError(
            {"__all__": [f"Illegal character '{t.value[0]}' at line {t.lineno}"]}
        )

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        self.lexer.lineno = 1
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
