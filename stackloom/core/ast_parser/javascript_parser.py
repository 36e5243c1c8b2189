"""JavaScript AST parser using tree-sitter.

Walks the tree-sitter AST to extract import declarations (static,
re-export, dynamic and ``require``) and exported names from JavaScript
source files. The JavaScript grammar includes JSX.
"""

import logging
from typing import List, Optional

import tree_sitter
import tree_sitter_javascript

from .base import BaseLanguageParser
from .models import ImportDeclaration, ImportSpecifier
from .utils import iter_nodes, string_literal_range

logger = logging.getLogger(__name__)

_JS_LANGUAGE = tree_sitter.Language(tree_sitter_javascript.language())


class JavaScriptParser(BaseLanguageParser):
    """tree-sitter based JavaScript parser.

    Extracts:
    - ``import x, { a as b }, * as ns from "src"`` -> kind="static"
    - ``export { a } from "src"`` / ``export * from "src"`` -> kind="reexport"
    - ``import("src")`` -> kind="dynamic"
    - ``require("src")`` -> kind="require"
    """

    def get_language(self) -> str:
        return "javascript"

    def get_tree_sitter_language(self) -> tree_sitter.Language:
        return _JS_LANGUAGE

    def extract_imports(self, tree: tree_sitter.Tree, source: bytes) -> List[ImportDeclaration]:
        """Extract module references from the AST in source order."""
        imports: List[ImportDeclaration] = []
        for node in iter_nodes(tree.root_node):
            if node.type == "import_statement":
                decl = self._extract_static_import(node, source)
            elif node.type == "export_statement" and node.child_by_field_name("source") is not None:
                decl = self._extract_reexport(node, source)
            elif node.type == "call_expression":
                decl = self._extract_call_import(node, source)
            else:
                continue
            if decl is not None:
                imports.append(decl)
        return imports

    def extract_exports(self, tree: tree_sitter.Tree, source: bytes) -> List[str]:
        """Extract exported binding names (``default`` for default exports)."""
        names: List[str] = []
        for child in tree.root_node.children:
            if child.type != "export_statement":
                continue
            if any(sub.type == "default" for sub in child.children):
                names.append("default")
                continue
            declaration = child.child_by_field_name("declaration")
            if declaration is not None:
                names.extend(self._declared_names(declaration, source))
                continue
            for sub in child.named_children:
                if sub.type != "export_clause":
                    continue
                for spec in sub.named_children:
                    if spec.type != "export_specifier":
                        continue
                    alias = spec.child_by_field_name("alias")
                    name = spec.child_by_field_name("name")
                    target = alias or name
                    if target is not None:
                        names.append(self._node_text(target, source))
        return names

    # ── Import helpers ───────────────────────────────────────────────

    def _extract_static_import(
        self, node: tree_sitter.Node, source: bytes
    ) -> Optional[ImportDeclaration]:
        source_node = node.child_by_field_name("source")
        if source_node is None:
            return None
        specifiers: List[ImportSpecifier] = []
        for child in node.named_children:
            if child.type == "import_clause":
                specifiers.extend(self._extract_specifiers(child, source))
        return self._make_declaration(node, source_node, source, "static", specifiers)

    def _extract_reexport(
        self, node: tree_sitter.Node, source: bytes
    ) -> Optional[ImportDeclaration]:
        source_node = node.child_by_field_name("source")
        specifiers: List[ImportSpecifier] = []
        for child in node.named_children:
            if child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    if name is None:
                        continue
                    imported = self._node_text(name, source)
                    local = self._node_text(alias, source) if alias is not None else imported
                    specifiers.append(ImportSpecifier(kind="named", local=local, imported=imported))
            elif child.type == "namespace_export":
                ident = self._get_child_by_type(child, "identifier")
                local = self._node_text(ident, source) if ident is not None else "*"
                specifiers.append(ImportSpecifier(kind="namespace", local=local))
        return self._make_declaration(node, source_node, source, "reexport", specifiers)

    def _extract_call_import(
        self, node: tree_sitter.Node, source: bytes
    ) -> Optional[ImportDeclaration]:
        function = node.child_by_field_name("function")
        if function is None:
            return None
        if function.type == "import":
            kind = "dynamic"
        elif function.type == "identifier" and self._node_text(function, source) == "require":
            kind = "require"
        else:
            return None

        arguments = node.child_by_field_name("arguments")
        if arguments is None or not arguments.named_children:
            return None
        first = arguments.named_children[0]
        if first.type != "string":
            return None
        return self._make_declaration(node, first, source, kind, [])

    def _extract_specifiers(self, clause: tree_sitter.Node, source: bytes) -> List[ImportSpecifier]:
        specifiers: List[ImportSpecifier] = []
        for child in clause.named_children:
            if child.type == "identifier":
                specifiers.append(ImportSpecifier(kind="default", local=self._node_text(child, source)))
            elif child.type == "namespace_import":
                ident = self._get_child_by_type(child, "identifier")
                if ident is not None:
                    specifiers.append(ImportSpecifier(kind="namespace", local=self._node_text(ident, source)))
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    if name is None:
                        continue
                    imported = self._node_text(name, source)
                    local = self._node_text(alias, source) if alias is not None else imported
                    specifiers.append(ImportSpecifier(kind="named", local=local, imported=imported))
        return specifiers

    def _make_declaration(
        self,
        node: tree_sitter.Node,
        string_node: tree_sitter.Node,
        source: bytes,
        kind: str,
        specifiers: List[ImportSpecifier],
    ) -> Optional[ImportDeclaration]:
        span = string_literal_range(string_node)
        if span is None:
            return None
        start, end = span
        return ImportDeclaration(
            source=source[start:end].decode("utf-8", errors="replace"),
            kind=kind,
            line=node.start_point[0] + 1,
            column=node.start_point[1],
            start_byte=node.start_byte,
            end_byte=node.end_byte,
            source_start_byte=start,
            source_end_byte=end,
            specifiers=specifiers,
            text=self._node_text(node, source),
        )

    # ── Export helpers ───────────────────────────────────────────────

    def _declared_names(self, declaration: tree_sitter.Node, source: bytes) -> List[str]:
        if declaration.type in ("lexical_declaration", "variable_declaration"):
            names = []
            for child in declaration.named_children:
                if child.type == "variable_declarator":
                    name = child.child_by_field_name("name")
                    if name is not None and name.type == "identifier":
                        names.append(self._node_text(name, source))
            return names
        name = declaration.child_by_field_name("name")
        return [self._node_text(name, source)] if name is not None else []

    # ── Utilities ────────────────────────────────────────────────────

    @staticmethod
    def _node_text(node: tree_sitter.Node, source: bytes) -> str:
        return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def _get_child_by_type(node: tree_sitter.Node, type_name: str) -> Optional[tree_sitter.Node]:
        """Get first child with the given type."""
        for child in node.children:
            if child.type == type_name:
                return child
        return None
