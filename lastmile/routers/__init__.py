# HTTP routers

from . import imports, pricing, profit

__all__ = [
    "imports",
    "pricing",
    "profit",
]
