"""Build the per-file TransformationContext.

The context carries the file's classification and its import/export
surface.  Files a grammar profile covers are read through the parser;
everything else (and source that does not parse) falls back to regex
scanning, which is enough for dependency bookkeeping.
"""

import logging
import re
from typing import List, Optional

from ..ast_parser import is_supported_file, parse_source
from .models import TransformationContext

logger = logging.getLogger(__name__)

_IMPORT_FROM_RE = re.compile(r"""import\s+(?:[\w*{}\s,]+\s+from\s+)?['"]([^'"]+)['"]""")
_REQUIRE_RE = re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)""")
_EXPORT_RE = re.compile(r"export\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var)\s+(\w+)")
_EXPORT_DEFAULT_RE = re.compile(r"export\s+default\b")

# Ordered: the first matching marker decides the file type
_FILE_TYPE_MARKERS = (
    ("/pages/", "page"),
    ("/routes/", "page"),
    ("/components/", "component"),
    ("/layouts/", "layout"),
    ("/api/", "api"),
    ("/utils/", "util"),
    ("/helpers/", "util"),
    ("/config", "config"),
    (".test.", "test"),
    (".spec.", "test"),
)


def determine_file_type(file_path: str) -> str:
    """Classify a file by its path.

    Returns one of ``page``, ``component``, ``layout``, ``api``, ``util``,
    ``config``, ``test`` or ``module``.
    """
    path = "/" + file_path.replace("\\", "/").lower()
    for marker, file_type in _FILE_TYPE_MARKERS:
        if marker in path:
            return file_type
    return "module"


def package_name(specifier: str) -> Optional[str]:
    """``"@mui/material/Button"`` -> ``"@mui/material"``; relative -> None."""
    if not specifier or specifier.startswith((".", "/")):
        return None
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def _dependencies(imports: List[str]) -> List[str]:
    deps: List[str] = []
    for spec in imports:
        name = package_name(spec)
        if name and name not in deps:
            deps.append(name)
    return deps


def extract_imports(code: str) -> List[str]:
    """Module specifiers referenced by ``import``/``require``, regex based."""
    found = _IMPORT_FROM_RE.findall(code) + _REQUIRE_RE.findall(code)
    return list(dict.fromkeys(found))


def extract_exports(code: str) -> List[str]:
    names = _EXPORT_RE.findall(code)
    if _EXPORT_DEFAULT_RE.search(code) and "default" not in names:
        names.append("default")
    return list(dict.fromkeys(names))


def build_context(file_path: str, code: str, language: Optional[str] = None) -> TransformationContext:
    """Create a fresh context for one orchestrator invocation.

    Args:
        file_path: Repository-relative path of the file
        code: Original file content
        language: Declared source language, used when the extension is ambiguous

    Returns:
        TransformationContext; the AST pass appends its audit entries
        after the extracted import specifiers
    """
    imports: List[str] = []
    exports: List[str] = []

    if is_supported_file(file_path):
        try:
            parsed = parse_source(code, file_path, language)
        except ValueError as e:
            logger.debug(f"No parser for {file_path}: {e}")
            parsed = None
        if parsed is not None and not parsed.has_error:
            imports = list(dict.fromkeys(decl.source for decl in parsed.imports))
            exports = list(parsed.exports)
        else:
            imports, exports = extract_imports(code), extract_exports(code)
    else:
        imports, exports = extract_imports(code), extract_exports(code)

    return TransformationContext(
        file_path=file_path,
        file_type=determine_file_type(file_path),
        dependencies=_dependencies(imports),
        imports=imports,
        exports=exports,
        related_files=[],
    )
