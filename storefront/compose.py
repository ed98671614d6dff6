from functools import reduce
from typing import Any, Callable


def pipe(*funcs: Callable) -> Callable:
    """pipe(f, g, h)(x) == h(g(f(x)))"""
    return reduce(lambda f, g: lambda x: g(f(x)), funcs)


def tap(side_effect: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Шаг конвейера для побочного эффекта (лог), значение идёт дальше как есть"""

    def _step(value):
        side_effect(value)
        return value

    return _step
