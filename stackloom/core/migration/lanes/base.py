"""Migration lane base class and supporting dataclasses.

A migration lane encapsulates framework-pair migration knowledge:
ordered rewrite rules for the AST pass, file-structure rules, scaffold
templates and prompt augmentation for the semantic pass.  The core stays
orchestration -- lanes own the domain knowledge for one
``(source framework, target framework)`` pair.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ...ast_parser import ParseResult
from ..models import FileStructureChange, MigrationSpecification, TransformationContext


def normalize_framework(name: Optional[str]) -> str:
    """``"Next.js"`` -> ``"nextjs"``; comparison key for framework names."""
    return "".join(ch for ch in (name or "").lower() if ch.isalnum())


def route_segment(file_path: str) -> str:
    """``src/pages/blog/index.js`` -> ``blog``; the root route is ``(root)``."""
    route = file_path.replace("\\", "/")
    for prefix in ("src/pages/", "pages/", "src/app/", "app/"):
        if route.startswith(prefix):
            route = route[len(prefix):]
            break
    route = re.sub(r"\.(tsx?|jsx?|mjs|cjs)$", "", route)
    if route == "index" or route.endswith("/index"):
        route = re.sub(r"/?index$", "", route)
    return route or "(root)"


# ── Rewrite primitives ───────────────────────────────────────────────


@dataclass
class SourceEdit:
    """Replace ``source[start_byte:end_byte]`` with ``replacement``."""

    start_byte: int
    end_byte: int
    replacement: str


@dataclass
class RewriteContext:
    """What a rewrite rule sees: the current parse plus job/file context."""

    parse: ParseResult
    spec: MigrationSpecification
    context: TransformationContext

    def text(self, node) -> str:
        return self.parse.text(node)

    def audit(self, message: str) -> None:
        """Record a human-readable note in the file's audit trail."""
        self.context.related_files.append(message)


@dataclass
class RewriteRule:
    """An ordered, deterministic rewrite applied by the AST pass."""

    name: str
    """Rule identifier, e.g. ``"use_navigate_to_use_router"``."""

    phase: str
    """``"syntax"`` or ``"routing"``; phases run in that order."""

    rewrite: Callable[[RewriteContext], List[SourceEdit]]
    """Collects edits against the current parse.  Must not mutate it."""

    description: str = ""
    """Optional human-readable explanation of what this rule does."""


REWRITE_PHASES = ("syntax", "routing")


# ── Framework profiles ───────────────────────────────────────────────


@dataclass
class FrameworkProfile:
    """Static facts about one framework, used by validation.

    A profile is consulted as the *source* (what must disappear) or the
    *target* (what imports are legitimate) of a migration.
    """

    name: str
    aliases: Tuple[str, ...] = ()

    legacy_packages: Tuple[str, ...] = ()
    """Import prefixes that must not survive a migration away from it."""

    legacy_components: Tuple[str, ...] = ()
    """JSX element names of its routing layer."""

    reference_patterns: Tuple[str, ...] = ()
    """Regexes over raw text that indicate leftover framework usage."""

    valid_import_prefixes: Tuple[str, ...] = ()
    """As a target: acceptable bare import prefixes.  Empty = anything."""

    path_aliases: Dict[str, str] = field(default_factory=dict)
    """As a target: conventional directory -> import alias."""

    @property
    def key(self) -> str:
        return normalize_framework(self.name)


# ── Abstract Base Class ──────────────────────────────────────────────


class MigrationLane(ABC):
    """Abstract base for migration lanes.

    Each lane owns what is unique to a specific migration path:

    * **Rewrite rules** -- ordered syntax/routing substitutions.
    * **Structure rules** -- where each file lives in the target layout.
    * **Scaffolds** -- files the target requires that the source lacks.
    * **Prompt augmentation** -- framework context for the semantic pass.

    Parsers, the rule engine and scoring are *not* part of lanes -- they
    are core citizens, always available.
    """

    # ── Identity ─────────────────────────────────────────────────

    @property
    @abstractmethod
    def lane_id(self) -> str:
        """Unique identifier, e.g. ``"react_to_nextjs"``."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name, e.g. ``"React -> Next.js"``."""
        ...

    @property
    @abstractmethod
    def source_frameworks(self) -> List[str]:
        """Framework identifiers this lane migrates FROM."""
        ...

    @property
    @abstractmethod
    def target_frameworks(self) -> List[str]:
        """Framework identifiers this lane migrates TO."""
        ...

    @property
    @abstractmethod
    def version(self) -> str:
        """Semantic version of this lane.  Bump when rules change."""
        ...

    @property
    def deprecated(self) -> bool:
        """When ``True``, :meth:`LaneRegistry.detect_lane` skips this lane."""
        return False

    def detect_applicability(self, source_framework: str, target_framework: str) -> float:
        """Score how applicable this lane is for a source/target pair.

        Returns 0.0 (not applicable) to 1.0 (exact match).
        """
        sources = {normalize_framework(f) for f in self.source_frameworks}
        targets = {normalize_framework(f) for f in self.target_frameworks}
        src = normalize_framework(source_framework)
        tgt = normalize_framework(target_framework)
        if src in sources and tgt in targets:
            return 1.0
        return 0.0

    # ── Rewrites ──────────────────────────────────────────────────

    @abstractmethod
    def get_rewrite_rules(self) -> List[RewriteRule]:
        """Return rewrite rules in application order."""
        ...

    # ── File structure ────────────────────────────────────────────

    def plan_file_change(
        self, file_path: str, content: str, spec: MigrationSpecification
    ) -> Optional[FileStructureChange]:
        """Plan where one source file goes.  ``None`` means it stays."""
        return None

    def required_files(
        self, planned: List[FileStructureChange], spec: MigrationSpecification
    ) -> List[FileStructureChange]:
        """Files the target layout needs that the plan does not produce."""
        return []

    def generate_scaffold(
        self, change: FileStructureChange, spec: MigrationSpecification
    ) -> Optional[str]:
        """Content for a ``create`` change, or ``None`` if unsupported."""
        return None

    def generate_aggregate_config(
        self, merged_styles: List[str], spec: MigrationSpecification
    ) -> Optional[Tuple[str, str]]:
        """Post-batch ``(path, content)`` config file, if the target needs one."""
        return None

    # ── Semantic pass ─────────────────────────────────────────────

    def augment_prompt(self, base_prompt: str, spec: MigrationSpecification) -> str:
        """Inject lane-specific knowledge into the semantic-pass prompt."""
        return base_prompt
