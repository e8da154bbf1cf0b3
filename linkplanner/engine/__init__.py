"""Link recommendation and insertion planning engine."""

from .corpus import PageGraph, build_graph
from .pipeline import plan_links

__all__ = ["PageGraph", "build_graph", "plan_links"]
