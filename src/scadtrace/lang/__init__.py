"""The scene description language.

Components:
    lexer: Source text to tokens
    parser: Tokens to an immutable syntax tree (nodes)
    evaluator: Syntax tree to a scene.model.Scene
    builtins: Builtin functions (math, vectors, textures)

Nothing here depends on Taichi.
"""

from .evaluator import Evaluator, evaluate, load_scene
from .lexer import Token, tokenize
from .parser import parse

__all__ = [
    "Evaluator",
    "Token",
    "evaluate",
    "load_scene",
    "parse",
    "tokenize",
]
