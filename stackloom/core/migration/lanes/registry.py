"""Migration lane registry.

Dict-based registry of lanes and framework profiles.  Instances are
created explicitly and injected into the pipeline, so tests can build a
fresh registry per case; :func:`create_default_registry` registers the
lanes and profiles that ship with Stackloom.
"""

import logging
from typing import Any, Dict, List, Optional

from .base import FrameworkProfile, MigrationLane, RewriteRule, normalize_framework

logger = logging.getLogger(__name__)

_EMPTY_PROFILE = FrameworkProfile(name="unknown")


class LaneRegistry:
    """Registry for migration lanes and framework profiles."""

    def __init__(self):
        self._lanes: Dict[str, MigrationLane] = {}
        self._profiles: Dict[str, FrameworkProfile] = {}

    # ── Lanes ─────────────────────────────────────────────────────

    def register(self, lane: MigrationLane) -> None:
        """Register a migration lane instance."""
        self._lanes[lane.lane_id] = lane
        logger.info(
            "Registered migration lane: %s (%s)",
            lane.lane_id,
            lane.display_name,
        )

    def detect_lane(self, source_framework: str, target_framework: str) -> Optional[MigrationLane]:
        """Find the best lane for a source/target combination.

        Iterates all registered lanes, scores applicability, and returns
        the highest-scoring lane above 0.0 -- or ``None``.
        """
        best_lane: Optional[MigrationLane] = None
        best_score = 0.0

        for lane in self._lanes.values():
            if lane.deprecated:
                continue
            try:
                score = lane.detect_applicability(source_framework, target_framework)
            except Exception:
                logger.warning(
                    "Lane %s applicability check failed", lane.lane_id, exc_info=True
                )
                continue
            if score > best_score:
                best_score = score
                best_lane = lane

        if best_lane is not None:
            logger.debug(
                "Detected migration lane: %s (score=%.2f)",
                best_lane.lane_id,
                best_score,
            )
        return best_lane

    def get_lane(self, lane_id: str) -> Optional[MigrationLane]:
        """Get a lane by ID.  Returns ``None`` if not found."""
        return self._lanes.get(lane_id)

    def rules_for(self, source_framework: str, target_framework: str) -> List[RewriteRule]:
        """Ordered rewrite rules for a pair; empty when no lane applies."""
        lane = self.detect_lane(source_framework, target_framework)
        return lane.get_rewrite_rules() if lane is not None else []

    def list_lanes(self) -> List[Dict[str, Any]]:
        """List all registered lanes with metadata."""
        return [
            {
                "lane_id": lane.lane_id,
                "display_name": lane.display_name,
                "source_frameworks": lane.source_frameworks,
                "target_frameworks": lane.target_frameworks,
                "version": lane.version,
                "deprecated": lane.deprecated,
                "rules": [rule.name for rule in lane.get_rewrite_rules()],
            }
            for lane in self._lanes.values()
        ]

    # ── Profiles ──────────────────────────────────────────────────

    def register_profile(self, profile: FrameworkProfile) -> None:
        self._profiles[profile.key] = profile
        for alias in profile.aliases:
            self._profiles[normalize_framework(alias)] = profile

    def get_profile(self, framework: str) -> FrameworkProfile:
        """Profile for a framework name; an empty profile when unknown."""
        return self._profiles.get(normalize_framework(framework), _EMPTY_PROFILE)


def create_default_registry() -> LaneRegistry:
    """A registry holding every built-in lane and framework profile."""
    from .profiles import BUILTIN_PROFILES
    from .react_to_nextjs import ReactToNextJsLane

    registry = LaneRegistry()
    for profile in BUILTIN_PROFILES:
        registry.register_profile(profile)
    registry.register(ReactToNextJsLane())
    return registry
