"""Tests for the AST transformation pass."""

import pytest
from stackloom.core.ast_parser import parse_source
from stackloom.core.migration.ast_pass import (
    AstTransformationPass,
    apply_edits,
    infer_path_alias,
    map_import_source,
    summarize_audit,
)
from stackloom.core.migration.errors import TransformationError
from stackloom.core.migration.lanes import LaneRegistry, MigrationLane, RewriteRule, SourceEdit
from stackloom.core.migration.models import MigrationSpecification, TransformationContext


# =========================================================================
# Fixtures
# =========================================================================

ROUTER_SPEC = MigrationSpecification.from_dict({
    "source": {"language": "JavaScript", "framework": "React"},
    "target": {"language": "TypeScript", "framework": "Next.js"},
    "mappings": {"imports": {"react-router-dom": "next/navigation"}},
    "rules": {
        "mustPreserve": [],
        "mustTransform": [],
        "mustRemove": [],
        "mustRefactor": [],
        "breakingChanges": [],
        "deprecations": [],
    },
})

NAVIGATION_COMPONENT = '''import { useNavigate } from "react-router-dom";

export default function Home() {
  const navigate = useNavigate();
  return <a href="/about" onClick={() => navigate("/about")}>About</a>;
}
'''

DUPLICATE_IMPORTS = '''import { a, b } from "lib";
import { b, a } from "lib";

export const value = a + b;
'''

BROKEN = "export default function ( {\n"


def _context(path="src/pages/Home.jsx"):
    return TransformationContext(file_path=path, file_type="page")


def _spec(**mappings):
    return MigrationSpecification.from_dict({
        "source": {"language": "JavaScript", "framework": "Vue"},
        "target": {"language": "JavaScript", "framework": "Nuxt"},
        "mappings": mappings,
    })


class _ExplodingLane(MigrationLane):
    lane_id = "exploding"
    display_name = "Exploding"
    source_frameworks = ["Vue"]
    target_frameworks = ["Nuxt"]
    version = "0.0.1"

    def get_rewrite_rules(self):
        def rewrite(ctx):
            raise KeyError("boom")
        return [RewriteRule(name="explode", phase="syntax", rewrite=rewrite)]


class TestApplyEdits:
    def test_back_to_front(self):
        src = b"abc def ghi"
        edits = [SourceEdit(0, 3, "ABC"), SourceEdit(8, 11, "GHI")]
        assert apply_edits(src, edits) == "ABC def GHI"

    def test_overlapping_edit_is_dropped(self):
        src = b"abcdef"
        edits = [SourceEdit(0, 4, "X"), SourceEdit(2, 6, "Y")]
        assert apply_edits(src, edits) == "abY"

    def test_insertion(self):
        assert apply_edits(b"world", [SourceEdit(0, 0, "hello ")]) == "hello world"


class TestImportMapping:
    def test_exact_match(self):
        assert map_import_source("react-router-dom", {"react-router-dom": "next/navigation"}) == "next/navigation"

    def test_prefix_at_path_boundary(self):
        mappings = {"lodash": "lodash-es"}
        assert map_import_source("lodash/fp", mappings) == "lodash-es/fp"
        assert map_import_source("lodash-es", mappings) is None

    def test_longest_prefix_wins(self):
        mappings = {"@mui": "@acme", "@mui/material": "@acme/ui"}
        assert map_import_source("@mui/material/Button", mappings) == "@acme/ui/Button"

    def test_no_mapping(self):
        assert map_import_source("react", {"vue": "nuxt"}) is None


class TestPathAlias:
    ALIASES = {"components": "@components", "hooks": "@hooks"}

    def test_relative_import_into_aliased_directory(self):
        assert infer_path_alias("./components/Button", "src/App.jsx", self.ALIASES) == "@components/Button"

    def test_parent_relative_import(self):
        assert infer_path_alias("../hooks/useAuth", "src/pages/Home.jsx", self.ALIASES) == "@hooks/useAuth"

    def test_unaliased_directory(self):
        assert infer_path_alias("./styles/theme", "src/App.jsx", self.ALIASES) is None

    def test_bare_specifier_untouched(self):
        assert infer_path_alias("react", "src/App.jsx", self.ALIASES) is None

    def test_escaping_repository_root(self):
        assert infer_path_alias("../../x/components", "src/App.jsx", self.ALIASES) is None


class TestAstTransformationPass:
    def test_import_mapping_and_routing_rules(self):
        context = _context()
        result = AstTransformationPass().transform(NAVIGATION_COMPONENT, ROUTER_SPEC, context)

        assert result.errors == []
        assert '"next/navigation"' in result.code
        assert "react-router-dom" not in result.code
        assert "useRouter()" in result.code
        assert "{ useRouter }" in result.code
        assert "<Link href=\"/about\"" in result.code
        assert "</Link>" in result.code
        assert 'import Link from "next/link";' in result.code

        import_changes, rewrites = summarize_audit(context)
        assert "react-router-dom -> next/navigation" in import_changes
        assert "Transformed useNavigate to useRouter" in rewrites
        assert "Converted <a href> elements to Next.js <Link>" in rewrites

    def test_output_reparses_and_second_pass_is_stable(self):
        first = AstTransformationPass().transform(NAVIGATION_COMPONENT, ROUTER_SPEC, _context())
        assert not parse_source(first.code, "app/page.tsx").has_error

        second = AstTransformationPass().transform(first.code, ROUTER_SPEC, _context())
        assert second.code == first.code

    def test_duplicate_imports_collapse(self):
        result = AstTransformationPass().transform(DUPLICATE_IMPORTS, _spec(), _context("src/lib.js"))
        parsed = parse_source(result.code, "src/lib.js")
        assert [d.source for d in parsed.imports] == ["lib"]
        assert "export const value = a + b;" in result.code

    def test_dynamic_import_mapping_is_audited(self):
        code = 'const Page = () => import("vue-router/lazy");\n'
        context = _context("src/router.js")
        result = AstTransformationPass().transform(code, _spec(imports={"vue-router": "nuxt/app"}), context)
        assert 'import("nuxt/app/lazy")' in result.code
        assert "dynamic: vue-router/lazy -> nuxt/app/lazy" in context.imports

    def test_mapping_driven_renames(self):
        code = (
            'import { useStore } from "vuex";\n'
            "export const C = () => { const s = useStore(); return <OldButton label={s} />; };\n"
        )
        spec = _spec(routing={"useStore": "useAppStore"}, components={"OldButton": "NewButton"})
        result = AstTransformationPass().transform(code, spec, _context("src/C.jsx"))
        assert "useAppStore()" in result.code
        assert "{ useAppStore }" in result.code
        assert "<NewButton" in result.code

    def test_prose_mappings_are_ignored(self):
        code = "export const x = Route;\n"
        spec = _spec(routing={"Route": "app directory structure"})
        result = AstTransformationPass().transform(code, spec, _context("src/x.js"))
        assert result.code == code

    def test_typescript_casts_are_not_markup(self):
        code = (
            'import { useParams } from "react-router-dom";\n'
            "const x: any = 1;\n"
            "export const y = <string>x;\n"
        )
        result = AstTransformationPass().transform(code, ROUTER_SPEC, _context("lib/util.ts"))
        assert result.errors == []
        assert '"next/navigation"' in result.code
        assert "<string>x" in result.code
        assert not parse_source(result.code, "lib/util.ts").has_error

    def test_parse_failure_returns_original(self):
        result = AstTransformationPass().transform(BROKEN, ROUTER_SPEC, _context("src/broken.js"))
        assert result.code == BROKEN
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Parse failed:")

    def test_failing_rule_raises_transformation_error(self):
        registry = LaneRegistry()
        registry.register(_ExplodingLane())
        with pytest.raises(TransformationError, match="Rewrite rule 'explode' failed"):
            AstTransformationPass(registry).transform("export const a = 1;\n", _spec(), _context("src/a.js"))
