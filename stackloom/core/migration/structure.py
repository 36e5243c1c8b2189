"""File-structure planning and style-sheet merging.

The planner asks the lane for the detected ``(source, target)`` pair where
every file goes, then adds the files the target layout requires and fills
their scaffold content.  Style sheets that land on the same target path
are merged after the batch.
"""

import logging
import re
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .lanes import LaneRegistry, create_default_registry
from .models import FileStructureChange, MigrationSpecification

logger = logging.getLogger(__name__)

_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_TAILWIND_LINE_RE = re.compile(r"^\s*@tailwind\s+[\w-]+\s*;\s*$", re.MULTILINE)

_ACTION_ORDER = {"create": 0, "move": 1, "rename": 1, "delete": 2}


class StructurePlanner(Protocol):
    def plan_structure_changes(
        self, files: Dict[str, str], spec: MigrationSpecification
    ) -> List[FileStructureChange]:
        ...


def _sort_key(change: FileStructureChange) -> Tuple[int, int, int, str]:
    path = change.new_path or change.original_path
    return (
        0 if change.file_type == "layout" else 1,
        _ACTION_ORDER.get(change.action, 3),
        path.count("/"),
        path,
    )


class DefaultStructurePlanner:
    """Lane-driven structure planner.

    Args:
        lane_registry: Registry used to find the lane for the job
    """

    def __init__(self, lane_registry: Optional[LaneRegistry] = None):
        self._lanes = lane_registry or create_default_registry()

    def plan_structure_changes(
        self, files: Dict[str, str], spec: MigrationSpecification
    ) -> List[FileStructureChange]:
        """Plan moves, deletions and scaffold creations for a repository.

        Args:
            files: ``{path: content}`` of the repository
            spec: Migration specification

        Returns:
            Changes ordered layouts first, then creates, moves and deletes,
            shallow paths before deep ones. Empty when no lane applies.
        """
        lane = self._lanes.detect_lane(spec.source.framework, spec.target.framework)
        if lane is None:
            logger.info(
                f"No migration lane for {spec.source.framework} -> {spec.target.framework}; "
                "file structure unchanged"
            )
            return []

        planned: List[FileStructureChange] = []
        for path, content in files.items():
            change = lane.plan_file_change(path, content or "", spec)
            if change is not None:
                planned.append(change)

        for change in lane.required_files(planned, spec):
            if change.content is None:
                change.content = lane.generate_scaffold(change, spec)
            planned.append(change)

        planned.sort(key=_sort_key)
        logger.info(
            f"Planned {len(planned)} structure change(s) via lane {lane.lane_id}"
        )
        return planned


# ── Style sheets ─────────────────────────────────────────────────────


def remove_duplicate_css_rules(css: str) -> str:
    """Drop repeated top-level rules with the same selector, keeping the first.

    At-rules (``@media``, ``@import``, ...) are always kept.  Comments in
    front of a dropped rule are preserved.
    """
    out: List[str] = []
    seen = set()
    depth = 0
    start = 0
    block_start = 0
    i = 0
    length = len(css)

    while i < length:
        if css.startswith("/*", i):
            end = css.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        ch = css[i]
        if ch == "{":
            if depth == 0:
                block_start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                prelude = css[start:block_start]
                selector = " ".join(_COMMENT_RE.sub("", prelude).split())
                if selector.startswith("@") or selector not in seen:
                    seen.add(selector)
                    out.append(css[start:i + 1])
                else:
                    last_comment = prelude.rfind("*/")
                    if last_comment != -1:
                        out.append(prelude[:last_comment + 2])
                start = i + 1
        elif ch == ";" and depth == 0:
            out.append(css[start:i + 1])
            start = i + 1
        i += 1

    out.append(css[start:])
    return "".join(out)


def merge_style_sheets(sheets: Sequence[Tuple[str, str]], prelude: str = "") -> str:
    """Concatenate style sheets under ``/* From <path> */`` headers.

    Args:
        sheets: ``(original path, content)`` pairs in merge order
        prelude: Text placed before the merged sheets (framework directives)

    Returns:
        Merged sheet with duplicate selectors removed
    """
    parts = []
    for path, content in sheets:
        body = _TAILWIND_LINE_RE.sub("", content or "").strip()
        parts.append(f"/* From {path} */\n{body}\n")
    merged = remove_duplicate_css_rules("\n".join(parts))
    if prelude:
        return f"{prelude.rstrip()}\n\n{merged}"
    return merged
