from importlib.metadata import version

from . import get, ir_dist, pp, tl, util

__all__ = ["get", "ir_dist", "pp", "tl", "util"]

__version__ = version("repgraph")
