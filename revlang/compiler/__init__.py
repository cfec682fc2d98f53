"""revlang front end: lexer and parser for the concrete syntax."""

from .lexer import Lexer, Token, TokenType, tokenize
from .parser import Parser, parse, parse_procedure
