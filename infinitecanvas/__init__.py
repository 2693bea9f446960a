"""Infinite Canvas - a node-graph canvas for JSON Canvas files."""

__version__ = "1.0.0"
__app_id__ = "io.github.infinitecanvas.InfiniteCanvas"
