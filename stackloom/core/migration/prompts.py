"""LLM prompt templates for the semantic pass.

The semantic pass receives code the AST pass already rewrote, so the
prompt asks the model to finish the parts that deterministic rewriting
cannot express (lifecycle methods, data fetching, conventions) and to
answer in a fixed JSON shape.
"""

from typing import Dict

from .models import MigrationSpecification, TransformationContext

MIGRATION_ROLE = """You are an expert code migration assistant. You transform source files
between web application stacks while preserving business logic and component behavior.
You never invent features and you never leave placeholders in the code you return."""

RESPONSE_FORMAT = """Respond in the following JSON format:
{
  "code": "COMPLETE transformed code - valid, runnable, with NO placeholders",
  "confidence": 0-100,
  "reasoning": "explanation of changes made",
  "warnings": ["any warnings or concerns"],
  "requiresReview": true/false
}

IMPORTANT:
- Return ONLY valid JSON, no additional text
- Every const/let/var MUST have an initializer
- All imports must be complete
- All functions must have complete bodies"""


def _format_mapping(mapping: Dict[str, str]) -> str:
    if not mapping:
        return "(none)"
    return "\n".join(f"{src} -> {dst}" for src, dst in mapping.items())


def _join(items) -> str:
    return ", ".join(items) if items else "(none)"


def build_transform_prompt(
    code: str,
    spec: MigrationSpecification,
    context: TransformationContext,
) -> str:
    """Prompt for transforming one file with the semantic pass.

    Args:
        code: Output of the AST pass
        spec: Migration specification
        context: Per-file context (path, type, dependencies)

    Returns:
        Prompt string; lanes may append framework-specific guidance
    """
    source, target = spec.source, spec.target
    conventions = target.component_conventions
    server_line = "\n- Use Server Components where possible" if conventions.server_components else ""

    return f"""{MIGRATION_ROLE}

Transform the following {source.framework} file to {target.framework}.

SOURCE FRAMEWORK: {source.framework} {source.version}
TARGET FRAMEWORK: {target.framework} {target.version}

FILE CONTEXT:
- File Path: {context.file_path}
- File Type: {context.file_type}
- Dependencies: {_join(context.dependencies)}

MIGRATION RULES:
Must Preserve: {_join(spec.rules.must_preserve)}
Must Transform: {_join(spec.rules.must_transform)}
Must Remove: {_join(spec.rules.must_remove)}

IMPORT MAPPINGS:
{_format_mapping(spec.mappings.imports)}

LIFECYCLE MAPPINGS:
{_format_mapping(target.lifecycle_mappings)}

COMPONENT CONVENTIONS:
- File Extension: {conventions.file_extension}
- Naming Convention: {conventions.naming_convention}
- Export Style: {conventions.export_style}{server_line}

SOURCE CODE:
```{source.language}
{code}
```

INSTRUCTIONS:
1. Transform the file to {target.framework} following the conventions above
2. Apply all import mappings
3. Transform lifecycle methods according to the mappings
4. Preserve business logic and component behavior
5. The "code" field MUST contain complete, syntactically valid code

{RESPONSE_FORMAT}
"""
