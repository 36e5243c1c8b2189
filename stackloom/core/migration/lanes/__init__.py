"""Migration lanes -- framework-pair migration knowledge.

A :class:`LaneRegistry` instance is the single entry point the pipeline
uses to find rewrite rules, structure rules and framework profiles.
:func:`create_default_registry` builds one with every built-in lane.
"""

from .base import (
    FrameworkProfile,
    MigrationLane,
    RewriteContext,
    RewriteRule,
    SourceEdit,
    normalize_framework,
    route_segment,
)
from .react_to_nextjs import ReactToNextJsLane
from .registry import LaneRegistry, create_default_registry

__all__ = [
    "FrameworkProfile",
    "LaneRegistry",
    "MigrationLane",
    "ReactToNextJsLane",
    "RewriteContext",
    "RewriteRule",
    "SourceEdit",
    "create_default_registry",
    "normalize_framework",
    "route_segment",
]
