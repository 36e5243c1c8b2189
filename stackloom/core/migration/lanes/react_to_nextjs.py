"""React (react-router) -> Next.js (app router) migration lane.

Rewrite rules:

* ``anchor_to_link`` -- ``<a href=...>`` becomes ``<Link href=...>`` and
  ``next/link`` is imported when nothing binds ``Link`` yet.
* ``link_to_href`` -- react-router ``<Link to=...>`` becomes ``href``.
* ``navigate_component_note`` -- ``<Navigate>`` is flagged for manual work.
* ``use_navigate_to_use_router`` -- ``useNavigate()`` becomes ``useRouter()``.

Structure rules map the Create React App layout onto the app router
(``src/App.jsx`` -> ``app/page.tsx``, ``src/components`` -> ``components``,
``pages/x.js`` -> ``app/x/page.tsx``) and scaffold the files the app router
requires.
"""

import logging
import re
from typing import List, Optional, Tuple

from ...ast_parser import iter_nodes
from ..models import FileStructureChange, MigrationSpecification
from .base import (
    MigrationLane,
    RewriteContext,
    RewriteRule,
    SourceEdit,
    normalize_framework,
    route_segment,
)

logger = logging.getLogger(__name__)

_JSX_TAGS = ("jsx_opening_element", "jsx_self_closing_element")

_SCRIPT_RE = re.compile(r"\.(tsx?|jsx?|mjs|cjs)$", re.IGNORECASE)
_TEST_RE = re.compile(r"(\.(test|spec)\.(tsx?|jsx?)|setupTests\.(tsx?|jsx?))$", re.IGNORECASE)
_APP_ENTRY_RE = re.compile(r"(^|/)src/App\.(tsx?|jsx?)$", re.IGNORECASE)

# CRA files with no app-router counterpart
_REMOVED_FILES = frozenset({
    "src/index.js",
    "src/index.jsx",
    "src/index.ts",
    "src/index.tsx",
    "src/reportWebVitals.js",
    "src/reportWebVitals.ts",
    "public/index.html",
})

# Directories moved from src/ to the project root
_ROOT_DIRECTORIES = ("components", "context", "hooks")

GLOBALS_CSS = "app/globals.css"

TAILWIND_DIRECTIVES = "@tailwind base;\n@tailwind components;\n@tailwind utilities;\n"


# ── JSX helpers ──────────────────────────────────────────────────────


def _tag_name(ctx: RewriteContext, node) -> Tuple[Optional[object], str]:
    name = node.child_by_field_name("name")
    if name is None:
        return None, ""
    return name, ctx.text(name)


def _attribute(ctx: RewriteContext, tag, attr_name: str):
    """Return (attribute node, name node) for a JSX attribute, or (None, None)."""
    for child in tag.named_children:
        if child.type != "jsx_attribute" or not child.named_children:
            continue
        name_node = child.named_children[0]
        if ctx.text(name_node) == attr_name:
            return child, name_node
    return None, None


def _binds(ctx: RewriteContext, local: str) -> bool:
    return any(
        spec.local == local
        for decl in ctx.parse.imports
        for spec in decl.specifiers
    )


def _import_insertion_point(ctx: RewriteContext) -> Tuple[int, str, str]:
    """Byte offset plus (prefix, suffix) for inserting a new import line."""
    root = ctx.parse.root
    last_import = None
    directive_end = None
    for child in root.named_children:
        if child.type == "import_statement":
            last_import = child
        elif child.type == "expression_statement" and last_import is None and directive_end is None:
            first = child.named_children[0] if child.named_children else None
            if first is not None and first.type == "string":
                directive_end = child.end_byte
    if last_import is not None:
        return last_import.end_byte, "\n", ""
    if directive_end is not None:
        return directive_end, "\n", ""
    return 0, "", "\n"


# ── Rewrite rules ────────────────────────────────────────────────────


def anchor_to_link(ctx: RewriteContext) -> List[SourceEdit]:
    edits: List[SourceEdit] = []
    for node in iter_nodes(ctx.parse.root):
        if node.type not in _JSX_TAGS:
            continue
        name_node, name = _tag_name(ctx, node)
        if name != "a":
            continue
        href, _ = _attribute(ctx, node, "href")
        if href is None or len(href.named_children) < 2:
            continue
        edits.append(SourceEdit(name_node.start_byte, name_node.end_byte, "Link"))
        if node.type == "jsx_opening_element" and node.parent is not None:
            close = node.parent.child_by_field_name("close_tag")
            close_name = close.child_by_field_name("name") if close is not None else None
            if close_name is not None:
                edits.append(SourceEdit(close_name.start_byte, close_name.end_byte, "Link"))

    if edits:
        ctx.audit("Converted <a href> elements to Next.js <Link>")
        if not _binds(ctx, "Link"):
            offset, prefix, suffix = _import_insertion_point(ctx)
            edits.append(SourceEdit(offset, offset, f'{prefix}import Link from "next/link";{suffix}'))
    return edits


def link_to_href(ctx: RewriteContext) -> List[SourceEdit]:
    edits: List[SourceEdit] = []
    for node in iter_nodes(ctx.parse.root):
        if node.type not in _JSX_TAGS:
            continue
        _, name = _tag_name(ctx, node)
        if name != "Link":
            continue
        attr, attr_name = _attribute(ctx, node, "to")
        if attr is None:
            continue
        edits.append(SourceEdit(attr_name.start_byte, attr_name.end_byte, "href"))
        ctx.audit("Updated Link component to Next.js format")
    return edits


def navigate_component_note(ctx: RewriteContext) -> List[SourceEdit]:
    for node in iter_nodes(ctx.parse.root):
        if node.type in _JSX_TAGS and _tag_name(ctx, node)[1] == "Navigate":
            ctx.audit("Navigate component requires manual migration to useRouter")
    return []


def use_navigate_to_use_router(ctx: RewriteContext) -> List[SourceEdit]:
    edits: List[SourceEdit] = []
    for node in iter_nodes(ctx.parse.root):
        if node.type != "call_expression":
            continue
        function = node.child_by_field_name("function")
        if function is not None and function.type == "identifier" and ctx.text(function) == "useNavigate":
            edits.append(SourceEdit(function.start_byte, function.end_byte, "useRouter"))
            ctx.audit("Transformed useNavigate to useRouter")

    if edits and not _binds(ctx, "useRouter"):
        for node in iter_nodes(ctx.parse.root):
            if node.type != "import_specifier" or node.child_by_field_name("alias") is not None:
                continue
            name = node.child_by_field_name("name")
            if name is not None and ctx.text(name) == "useNavigate":
                edits.append(SourceEdit(name.start_byte, name.end_byte, "useRouter"))
    return edits


# ── Path helpers ─────────────────────────────────────────────────────


def _strip_src(path: str) -> str:
    return path[len("src/"):] if path.startswith("src/") else path


def _to_tsx(name: str) -> str:
    return re.sub(r"\.jsx?$", ".tsx", name)


# ── Lane ─────────────────────────────────────────────────────────────


class ReactToNextJsLane(MigrationLane):
    """React + react-router single-page apps to the Next.js app router."""

    @property
    def lane_id(self) -> str:
        return "react_to_nextjs"

    @property
    def display_name(self) -> str:
        return "React (react-router) -> Next.js (app router)"

    @property
    def source_frameworks(self) -> List[str]:
        return ["React", "cra", "create-react-app"]

    @property
    def target_frameworks(self) -> List[str]:
        return ["Next.js", "nextjs-app", "next"]

    @property
    def version(self) -> str:
        return "1.0.0"

    def get_rewrite_rules(self) -> List[RewriteRule]:
        return [
            RewriteRule(
                name="anchor_to_link",
                phase="syntax",
                rewrite=anchor_to_link,
                description="Plain <a href> navigation becomes next/link <Link>",
            ),
            RewriteRule(
                name="link_to_href",
                phase="routing",
                rewrite=link_to_href,
                description="react-router <Link to> becomes <Link href>",
            ),
            RewriteRule(
                name="navigate_component_note",
                phase="routing",
                rewrite=navigate_component_note,
                description="Flag <Navigate> for manual migration",
            ),
            RewriteRule(
                name="use_navigate_to_use_router",
                phase="routing",
                rewrite=use_navigate_to_use_router,
                description="useNavigate() becomes useRouter()",
            ),
        ]

    # ── File structure ────────────────────────────────────────────

    def plan_file_change(
        self, file_path: str, content: str, spec: MigrationSpecification
    ) -> Optional[FileStructureChange]:
        path = file_path.replace("\\", "/")

        if path in _REMOVED_FILES:
            return FileStructureChange(
                original_path=file_path, new_path="", action="delete", file_type="other", content=content
            )

        if re.search(r"\.(css|scss|sass)$", path, re.IGNORECASE):
            name = path.rsplit("/", 1)[-1].lower()
            if name in ("index.css", "app.css", "globals.css", "global.css"):
                return FileStructureChange(
                    original_path=file_path, new_path=GLOBALS_CSS, action="move", file_type="style", content=content
                )
            return None

        if not _SCRIPT_RE.search(path):
            return None

        if _TEST_RE.search(path):
            return FileStructureChange(
                original_path=file_path,
                new_path=f"__tests__/{_to_tsx(path.rsplit('/', 1)[-1])}",
                action="move",
                file_type="test",
                content=content,
            )

        if _APP_ENTRY_RE.search(path):
            return FileStructureChange(
                original_path=file_path,
                new_path=f"{spec.target.file_structure.pages}/page.tsx",
                action="move",
                file_type="page",
                content=content,
                is_route_file=True,
                route_segment="(root)",
                requires_layout=True,
            )

        relative = _strip_src(path)
        if relative.startswith("pages/api/"):
            segment = route_segment(relative[len("pages/"):])
            return FileStructureChange(
                original_path=file_path,
                new_path=f"{spec.target.file_structure.pages}/{segment}/route.ts",
                action="move",
                file_type="api",
                content=content,
                is_route_file=True,
                route_segment=segment,
            )
        if relative.startswith("pages/"):
            segment = route_segment(relative)
            base = spec.target.file_structure.pages
            new_path = f"{base}/page.tsx" if segment == "(root)" else f"{base}/{segment}/page.tsx"
            return FileStructureChange(
                original_path=file_path,
                new_path=new_path,
                action="move",
                file_type="page",
                content=content,
                is_route_file=True,
                route_segment=segment,
                requires_layout=segment != "(root)" and "/" not in segment,
                requires_loading="async" in content and "fetch" in content,
                requires_error="try" in content and "catch" in content,
            )

        for directory in _ROOT_DIRECTORIES:
            if path.startswith(f"src/{directory}/"):
                target_dir = spec.target.file_structure.components if directory == "components" else directory
                return FileStructureChange(
                    original_path=file_path,
                    new_path=f"{target_dir}/{_to_tsx(path[len(f'src/{directory}/'):])}",
                    action="move",
                    file_type="component",
                    content=content,
                )
        return None

    def required_files(
        self, planned: List[FileStructureChange], spec: MigrationSpecification
    ) -> List[FileStructureChange]:
        if normalize_framework(spec.target.routing) not in ("approuter", "app"):
            return []
        existing = {c.new_path for c in planned}
        base = spec.target.file_structure.pages
        wanted = [
            (f"{base}/layout.tsx", "layout", "(root)"),
            (f"{base}/error.tsx", "error", "(root)"),
            (f"{base}/not-found.tsx", "page", "(root)"),
            (GLOBALS_CSS, "style", None),
        ]
        for change in planned:
            if not change.is_route_file or change.file_type != "page":
                continue
            directory = change.new_path.rsplit("/", 1)[0]
            if directory == base:
                continue
            if change.requires_layout:
                wanted.append((f"{directory}/layout.tsx", "layout", change.route_segment))
            if change.requires_loading:
                wanted.append((f"{directory}/loading.tsx", "loading", change.route_segment))
            if change.requires_error:
                wanted.append((f"{directory}/error.tsx", "error", change.route_segment))

        required: List[FileStructureChange] = []
        for path, file_type, segment in wanted:
            if path in existing:
                continue
            existing.add(path)
            required.append(FileStructureChange(
                original_path="",
                new_path=path,
                action="create",
                file_type=file_type,
                is_route_file=file_type != "style",
                route_segment=segment,
            ))
        return required

    def generate_scaffold(
        self, change: FileStructureChange, spec: MigrationSpecification
    ) -> Optional[str]:
        if change.file_type == "layout":
            if change.new_path == f"{spec.target.file_structure.pages}/layout.tsx":
                return _ROOT_LAYOUT
            return _SEGMENT_LAYOUT
        if change.file_type == "error":
            return _ERROR_BOUNDARY
        if change.file_type == "loading":
            return _LOADING
        if change.file_type == "style":
            return TAILWIND_DIRECTIVES
        if change.file_type == "page":
            return _NOT_FOUND if "not-found" in change.new_path else _PAGE
        return None

    def generate_aggregate_config(
        self, merged_styles: List[str], spec: MigrationSpecification
    ) -> Optional[Tuple[str, str]]:
        if not merged_styles:
            return None
        content_globs = ['"./app/**/*.{js,ts,jsx,tsx,mdx}"', '"./components/**/*.{js,ts,jsx,tsx,mdx}"']
        if normalize_framework(spec.target.routing) in ("pagesrouter", "pages"):
            content_globs.insert(0, '"./pages/**/*.{js,ts,jsx,tsx,mdx}"')
        globs = ",\n    ".join(content_globs)
        return "tailwind.config.ts", _TAILWIND_CONFIG.format(globs=globs)

    def augment_prompt(self, base_prompt: str, spec: MigrationSpecification) -> str:
        return base_prompt + _NEXTJS_GUIDANCE


_NEXTJS_GUIDANCE = """
NEXT.JS APP ROUTER NOTES:
- Components using hooks, state or browser APIs need a 'use client' directive
- Navigation uses Link from 'next/link' and useRouter from 'next/navigation'
- Class component lifecycle methods become useEffect hooks
"""

_ROOT_LAYOUT = """import type { Metadata } from 'next'
import './globals.css'

export const metadata: Metadata = {
  title: 'My App',
  description: 'Migrated to Next.js App Router',
}

export default function RootLayout({
  children,
}: {
  children: React.ReactNode
}) {
  return (
    <html lang="en">
      <body>{children}</body>
    </html>
  )
}
"""

_SEGMENT_LAYOUT = """export default function Layout({
  children,
}: {
  children: React.ReactNode
}) {
  return <section>{children}</section>
}
"""

_ERROR_BOUNDARY = """'use client'

export default function Error({
  error,
  reset,
}: {
  error: Error & { digest?: string }
  reset: () => void
}) {
  return (
    <div>
      <h2>Something went wrong!</h2>
      <button onClick={() => reset()}>Try again</button>
    </div>
  )
}
"""

_LOADING = """export default function Loading() {
  return <div>Loading...</div>
}
"""

_NOT_FOUND = """import Link from 'next/link'

export default function NotFound() {
  return (
    <div>
      <h2>Not Found</h2>
      <Link href="/">Return Home</Link>
    </div>
  )
}
"""

_PAGE = """export default function Page() {
  return <div />
}
"""

_TAILWIND_CONFIG = """import type {{ Config }} from 'tailwindcss'

const config: Config = {{
  content: [
    {globs},
  ],
  theme: {{
    extend: {{}},
  }},
  plugins: [],
}}

export default config
"""
