"""Migration pipeline data models.

The migration specification is validated input, so it is modelled with
pydantic (accepting both the camelCase JSON emitted by spec generators and
snake_case YAML).  Everything the pipeline produces is a plain dataclass.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import RuleSetError, ValidationError

RULE_LIST_FIELDS = (
    ("mustPreserve", "must_preserve"),
    ("mustTransform", "must_transform"),
    ("mustRemove", "must_remove"),
    ("mustRefactor", "must_refactor"),
    ("breakingChanges", "breaking_changes"),
    ("deprecations", "deprecations"),
)

FILE_TYPES = ("page", "component", "layout", "api", "util", "config", "test", "module")


# ── Migration specification ──────────────────────────────────────────


class _SpecModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class FileStructure(_SpecModel):
    pages: str = Field("app", description="Directory for route/page files")
    components: str = Field("components", description="Directory for components")
    layouts: str = Field("app", description="Directory for layouts")
    api: str = Field("app/api", description="Directory for API routes")


class ComponentConventions(_SpecModel):
    file_extension: str = Field(".tsx", description="Extension for migrated source files")
    naming_convention: str = Field("PascalCase", description="PascalCase | camelCase | kebab-case")
    export_style: str = Field("default", description="default | named")
    server_components: bool = Field(False, description="Prefer server components")


class SourceStack(_SpecModel):
    language: str = "JavaScript"
    framework: str = "React"
    version: str = ""
    routing: str = ""
    patterns: Dict[str, Any] = Field(default_factory=dict)
    build_tool: str = ""
    package_manager: str = ""


class TargetStack(_SpecModel):
    language: str = "TypeScript"
    framework: str = "Next.js"
    version: str = ""
    routing: str = "app-router"
    file_structure: FileStructure = Field(default_factory=FileStructure)
    component_conventions: ComponentConventions = Field(default_factory=ComponentConventions)
    syntax_mappings: Dict[str, str] = Field(default_factory=dict)
    api_mappings: Dict[str, str] = Field(default_factory=dict)
    lifecycle_mappings: Dict[str, str] = Field(default_factory=dict)
    build_tool: str = ""
    package_manager: str = ""


class SymbolMappings(_SpecModel):
    imports: Dict[str, str] = Field(default_factory=dict, description="Module specifier renames")
    routing: Dict[str, str] = Field(default_factory=dict, description="Routing API renames")
    components: Dict[str, str] = Field(default_factory=dict, description="JSX element renames")
    styling: Dict[str, Any] = Field(default_factory=dict)
    state_management: Dict[str, Any] = Field(default_factory=dict)
    build_system: Dict[str, Any] = Field(default_factory=dict)


class BreakingChange(_SpecModel):
    id: str
    description: str = ""
    affected_apis: List[str] = Field(default_factory=list, alias="affectedAPIs")
    migration_path: str = ""
    auto_fixable: bool = False


class Deprecation(_SpecModel):
    id: str
    deprecated: str
    replacement: str = ""
    version: str = ""
    removal_version: Optional[str] = None


class MigrationRules(_SpecModel):
    must_preserve: List[str] = Field(default_factory=list)
    must_transform: List[str] = Field(default_factory=list)
    must_remove: List[str] = Field(default_factory=list)
    must_refactor: List[str] = Field(default_factory=list)
    breaking_changes: List[BreakingChange] = Field(default_factory=list)
    deprecations: List[Deprecation] = Field(default_factory=list)


class SpecMetadata(_SpecModel):
    version: str = "1.0.0"
    generated_at: str = ""
    estimated_complexity: str = "medium"
    estimated_duration: str = ""


class MigrationSpecification(_SpecModel):
    """Immutable per-job configuration consumed by every pipeline stage."""

    source: SourceStack = Field(default_factory=SourceStack)
    target: TargetStack = Field(default_factory=TargetStack)
    mappings: SymbolMappings = Field(default_factory=SymbolMappings)
    rules: MigrationRules = Field(default_factory=MigrationRules)
    metadata: SpecMetadata = Field(default_factory=SpecMetadata)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MigrationSpecification":
        """Validate a raw specification mapping.

        Raises:
            RuleSetError: If any rule list is not a list
            ValidationError: If the rest of the document is malformed
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Migration specification must be a mapping")
        if "rules" in data:
            validate_rule_shape(data["rules"])
        try:
            return cls.model_validate(dict(data))
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid migration specification: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> "MigrationSpecification":
        """Load a specification from a YAML or JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)


def validate_rule_shape(rules: Any) -> None:
    """Fail fast unless all six rule fields are lists.

    Accepts either spelling of each field.  A missing field counts as
    malformed, matching what spec generators always emit.
    """
    if isinstance(rules, MigrationRules):
        return
    if not isinstance(rules, Mapping):
        raise RuleSetError("Invalid rules: rules must be an object")
    for camel, snake in RULE_LIST_FIELDS:
        value = rules.get(camel, rules.get(snake))
        if not isinstance(value, list):
            raise RuleSetError(f"Invalid rules: {camel} must be an array")


# ── Pipeline records ─────────────────────────────────────────────────


@dataclass
class FileRecord:
    """A repository file handed to the pipeline.

    ``content`` may be ``None`` when the orchestrator is expected to fetch
    it through its content fetcher.
    """

    path: str
    content: Optional[str] = None


@dataclass
class FileStructureChange:
    """A planned move/create/delete of a repository file."""

    original_path: str  # "" for files that do not exist yet
    new_path: str  # "" for deletions
    action: str  # "move" | "create" | "delete" | "rename"
    file_type: str
    content: Optional[str] = None
    is_route_file: bool = False
    route_segment: Optional[str] = None
    requires_layout: bool = False
    requires_loading: bool = False
    requires_error: bool = False

    def summary(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "original_path": self.original_path,
            "is_route_file": self.is_route_file,
            "route_segment": self.route_segment,
        }


@dataclass
class TransformationContext:
    """Per-file context owned by a single orchestrator invocation.

    ``imports`` and ``related_files`` double as audit trails: the AST pass
    appends ``"X -> Y"`` strings describing what it rewrote.
    """

    file_path: str
    file_type: str = "module"
    dependencies: List[str] = field(default_factory=list)
    imports: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    related_files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Violation:
    """A typed finding produced by rule validation."""

    id: str
    type: str  # "breaking-change" | "deprecation" | "incompatibility"
    severity: str  # "error" | "warning"
    line: int
    column: int
    message: str
    suggestion: str = ""
    auto_fixable: bool = False
    file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RuleValidationResult:
    valid: bool
    violations: List[Violation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class AstPassResult:
    code: str
    errors: List[str] = field(default_factory=list)


@dataclass
class SemanticPassResult:
    code: str
    confidence: int
    warnings: List[str] = field(default_factory=list)
    requires_review: bool = False


@dataclass
class ValidationOutcome:
    """Everything the orchestrator learned while validating one file."""

    valid: bool
    violations: List[Violation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    syntax_valid: bool = True
    semantic_equivalence: bool = True
    imports_resolved: bool = True
    old_framework_references_removed: bool = True
    confidence_score: int = 0


@dataclass
class TransformMetadata:
    files_modified: int = 1
    lines_added: int = 0
    lines_removed: int = 0
    confidence_score: int = 0
    risk_score: int = 100
    requires_manual_review: bool = True
    transformations_applied: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    new_file_path: str = ""
    file_type: str = "module"
    language: str = ""
    framework: str = ""
    dependencies_added: List[str] = field(default_factory=list)
    dependencies_removed: List[str] = field(default_factory=list)
    structure_change: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TransformResult:
    """The unit of output per file. Immutable once returned."""

    code: str
    original_code: str
    file_path: str
    new_file_path: str
    diff: str
    metadata: TransformMetadata
    warnings: List[str] = field(default_factory=list)
    success: bool = True

    @property
    def confidence(self) -> int:
        return self.metadata.confidence_score

    @property
    def requires_review(self) -> bool:
        return self.metadata.requires_manual_review

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence
        data["requires_review"] = self.requires_review
        return data


@dataclass
class BatchStatistics:
    total_files: int = 0
    successful_transformations: int = 0
    requires_review: int = 0
    average_confidence: int = 0
    total_warnings: int = 0
    files_with_errors: int = 0


@dataclass
class BatchResult:
    """Results keyed by final file path, plus aggregate statistics."""

    results: Dict[str, TransformResult]
    statistics: BatchStatistics

    def to_json(self) -> str:
        return json.dumps(
            {
                "statistics": asdict(self.statistics),
                "results": {path: r.to_dict() for path, r in self.results.items()},
            },
            default=str,
            indent=2,
        )
