"""AST Parser utilities.

Grammar-profile registry, language detection and tree helpers.

New source languages are supported by registering a profile with
:func:`register_grammar`; nothing in the migration passes branches on a
language name.
"""

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    import tree_sitter

    from .base import BaseLanguageParser

DEFAULT_LANGUAGE = "javascript"


@dataclass
class GrammarProfile:
    """A registrable grammar: name, file extensions and parser factory."""

    language: str
    extensions: Tuple[str, ...]
    factory: Callable[[], "BaseLanguageParser"]
    aliases: Tuple[str, ...] = field(default_factory=tuple)


# Profile registry; parsers themselves are lazy-loaded
_grammar_profiles: Dict[str, GrammarProfile] = {}
_language_aliases: Dict[str, str] = {}
_parser_registry: Dict[str, "BaseLanguageParser"] = {}


def _normalize(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def register_grammar(
    language: str,
    extensions: List[str],
    factory: Callable[[], "BaseLanguageParser"],
    aliases: Optional[List[str]] = None,
) -> GrammarProfile:
    """Register (or replace) a grammar profile.

    Args:
        language: Canonical language identifier, e.g. ``"javascript"``
        extensions: File extensions including the dot, e.g. ``[".js"]``
        factory: Zero-argument callable returning a parser instance
        aliases: Extra names that resolve to this profile

    Returns:
        The registered GrammarProfile
    """
    key = _normalize(language)
    profile = GrammarProfile(
        language=key,
        extensions=tuple(ext.lower() for ext in extensions),
        factory=factory,
        aliases=tuple(aliases or ()),
    )
    _grammar_profiles[key] = profile
    _language_aliases[key] = key
    for alias in profile.aliases:
        _language_aliases[_normalize(alias)] = key
    _parser_registry.pop(key, None)
    return profile


def list_grammars() -> List[GrammarProfile]:
    return list(_grammar_profiles.values())


def normalize_language(name: Optional[str]) -> Optional[str]:
    """Map a free-form language name ("TypeScript", "tsx") to a profile key."""
    if not name:
        return None
    return _language_aliases.get(_normalize(name))


def detect_language(file_path: str) -> Optional[str]:
    """Detect the grammar profile from a file extension.

    Args:
        file_path: Path to the source file

    Returns:
        Language identifier string or None if unsupported
    """
    _, ext = os.path.splitext(file_path)
    ext = ext.lower()
    for profile in _grammar_profiles.values():
        if ext in profile.extensions:
            return profile.language
    return None


def resolve_language(language: Optional[str], file_path: str = "") -> str:
    """Pick the grammar for a file.

    The file extension wins when it maps to a registered profile (a
    ``.tsx`` file in a JavaScript project still needs the TSX grammar);
    otherwise the declared language is used, then the default profile.
    """
    return detect_language(file_path) or normalize_language(language) or DEFAULT_LANGUAGE


def get_parser(language: str) -> "BaseLanguageParser":
    """Get a parser instance for the given language.

    Uses a lazy-initialized registry to avoid importing
    grammar modules at startup.

    Args:
        language: Language identifier or alias (e.g., "JavaScript")

    Returns:
        Parser instance

    Raises:
        ValueError: If language is not registered
    """
    key = normalize_language(language)
    if key is None:
        raise ValueError(
            f"Unsupported language: {language}. "
            f"Supported: {sorted(_grammar_profiles)}"
        )
    if key not in _parser_registry:
        _parser_registry[key] = _grammar_profiles[key].factory()
    return _parser_registry[key]


def is_supported_file(file_path: str) -> bool:
    """Check if a file has an extension covered by a grammar profile."""
    return detect_language(file_path) is not None


# ── Tree helpers ─────────────────────────────────────────────────────


def iter_nodes(root: "tree_sitter.Node") -> Iterator["tree_sitter.Node"]:
    """Pre-order traversal of every node below (and including) root."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def string_literal_range(node: "tree_sitter.Node") -> Optional[Tuple[int, int]]:
    """Byte range of a string literal's contents, excluding the quotes."""
    if node.type != "string" or node.end_byte - node.start_byte < 2:
        return None
    return node.start_byte + 1, node.end_byte - 1


# ── Built-in profiles ────────────────────────────────────────────────


def _javascript_factory() -> "BaseLanguageParser":
    from .javascript_parser import JavaScriptParser
    return JavaScriptParser()


def _typescript_factory() -> "BaseLanguageParser":
    from .typescript_parser import TypeScriptParser
    return TypeScriptParser()


def _tsx_factory() -> "BaseLanguageParser":
    from .typescript_parser import TSXParser
    return TSXParser()


register_grammar(
    "javascript",
    [".js", ".jsx", ".mjs", ".cjs"],
    _javascript_factory,
    aliases=["js", "jsx", "ecmascript"],
)
register_grammar(
    "typescript",
    [".ts", ".mts", ".cts"],
    _typescript_factory,
    aliases=["ts"],
)
register_grammar(
    "tsx",
    [".tsx"],
    _tsx_factory,
)
