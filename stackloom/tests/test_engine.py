"""Tests for the hybrid transformation engine."""

import asyncio
from unittest.mock import Mock

import pytest
from stackloom.core.migration.engine import (
    SEMANTIC_UNAVAILABLE_WARNING,
    HybridTransformationEngine,
    count_diff_lines,
    determine_new_file_path,
    generate_diff,
    needs_semantic_pass,
    to_kebab_case,
    to_pascal_case,
)
from stackloom.core.migration.errors import AIServiceError, RuleSetError, TransformationError
from stackloom.core.migration.events import InMemoryEventSink
from stackloom.core.migration.models import (
    FileRecord,
    MigrationSpecification,
    SemanticPassResult,
    TransformationContext,
)
from stackloom.core.migration.rule_engine import RuleEngine
from stackloom.core.ast_parser import parse_source
from stackloom.setting import RecoverySettings, StackloomSettings


# =========================================================================
# Fixtures
# =========================================================================


def _settings():
    return StackloomSettings(recovery=RecoverySettings(initial_backoff_ms=0, max_backoff_ms=0))


def _spec(routing="app-router", **extra):
    data = {
        "source": {"language": "JavaScript", "framework": "React"},
        "target": {"language": "TypeScript", "framework": "Next.js", "routing": routing},
        "mappings": {"imports": {"react-router-dom": "next/navigation"}},
        "rules": {
            "mustPreserve": [],
            "mustTransform": ["Update imports to Next.js"],
            "mustRemove": [],
            "mustRefactor": [],
            "breakingChanges": [],
            "deprecations": [],
        },
    }
    data.update(extra)
    return MigrationSpecification.from_dict(data)


class FakeSemanticTransformer:
    """Echoes the code back with a fixed confidence; fails for chosen paths."""

    def __init__(self, fail_on=(), confidence=90):
        self.fail_on = set(fail_on)
        self.confidence = confidence
        self.calls = []

    def is_available(self):
        return True

    async def transform(self, code, spec, context):
        self.calls.append(context.file_path)
        if context.file_path in self.fail_on:
            raise AIServiceError("model unavailable", provider="fake", retryable=False)
        return SemanticPassResult(code=code, confidence=self.confidence)


NAVIGATION_PAGE = '''import { useNavigate } from "react-router-dom";

export default function Home() {
  const navigate = useNavigate();
  return <a href="/about" onClick={() => navigate("/about")}>About</a>;
}
'''


def _component(name):
    return f"export const {name} = () => <div>{name}</div>;\n"


# =========================================================================
# Helpers
# =========================================================================


class TestPathHelpers:
    def test_default_conventions(self):
        spec = _spec()
        assert determine_new_file_path("src/pages/home.jsx", spec) == "app/Home.tsx"
        assert determine_new_file_path("src/components/user-card.jsx", spec) == "components/UserCard.tsx"
        assert determine_new_file_path("src/lib/api/client.js", spec) == "app/api/Client.tsx"
        assert determine_new_file_path("src/utils/format.js", spec) == "src/utils/Format.tsx"

    def test_non_script_files_keep_their_path(self):
        assert determine_new_file_path("src/styles/main.css", _spec()) == "src/styles/main.css"
        assert determine_new_file_path("package.json", _spec()) == "package.json"

    def test_naming_conventions(self):
        camel = _spec(target={"framework": "Next.js", "componentConventions": {"namingConvention": "camelCase"}})
        assert determine_new_file_path("src/utils/format-date.js", camel) == "src/utils/formatDate.tsx"
        kebab = _spec(target={"framework": "Next.js", "componentConventions": {"namingConvention": "kebab-case"}})
        assert determine_new_file_path("src/components/UserCard.jsx", kebab) == "components/user-card.tsx"

    def test_case_helpers(self):
        assert to_pascal_case("user_profile-card") == "UserProfileCard"
        assert to_pascal_case("myHTTPClient") == "MyHTTPClient"
        assert to_kebab_case("UserCard") == "user-card"

    def test_diff_line_counts(self):
        diff = generate_diff("a\nb\n", "a\nc\nd\n")
        assert diff.startswith("--- original\n+++ transformed\n")
        assert count_diff_lines(diff) == (2, 1)

    def test_needs_semantic_pass(self):
        assert needs_semantic_pass("", TransformationContext(file_path="package.json"))
        assert needs_semantic_pass("", TransformationContext(file_path="a.jsx", file_type="component"))
        assert not needs_semantic_pass("export const x = 1;", TransformationContext(file_path="lib/x.js"))


# =========================================================================
# Single file
# =========================================================================


class TestTransform:
    def test_router_migration(self):
        engine = HybridTransformationEngine(settings=_settings())
        file = FileRecord(path="src/pages/Home.jsx", content=NAVIGATION_PAGE)
        result = asyncio.run(engine.transform(file, _spec()))

        assert result.success
        assert result.new_file_path == "app/Home.tsx"
        assert '"next/navigation"' in result.code
        assert "useRouter()" in result.code
        assert "react-router-dom" not in result.code
        assert result.original_code == NAVIGATION_PAGE
        assert result.warnings == [SEMANTIC_UNAVAILABLE_WARNING]
        # Validation 100 blended with the skipped-semantic confidence of 80
        assert result.confidence == 92
        assert not result.requires_review

        metadata = result.metadata
        assert metadata.risk_score == 8
        assert metadata.dependencies_added == ["next"]
        assert metadata.dependencies_removed == ["react-router-dom"]
        assert "react-router-dom -> next/navigation" in metadata.transformations_applied
        assert "File relocated from src/pages/Home.jsx to app/Home.tsx" in metadata.notes
        assert metadata.structure_change["route_segment"] == "Home"
        assert metadata.lines_added > 0
        assert not parse_source(result.code, result.new_file_path).has_error

    def test_explicit_new_path(self):
        engine = HybridTransformationEngine(settings=_settings())
        file = FileRecord(path="src/pages/Home.jsx", content=NAVIGATION_PAGE)
        result = asyncio.run(engine.transform(file, _spec(), new_file_path="app/page.tsx"))
        assert result.new_file_path == "app/page.tsx"

    def test_unchanged_code_modifies_nothing(self):
        engine = HybridTransformationEngine(settings=_settings())
        code = "export const sum = (a, b) => a + b;\n"
        result = asyncio.run(engine.transform(FileRecord(path="lib/sum.js", content=code), _spec()))
        assert result.code == code
        assert result.diff == ""
        assert result.metadata.files_modified == 0

    def test_semantic_pass_result_is_used(self):
        semantic = FakeSemanticTransformer(confidence=90)
        engine = HybridTransformationEngine(semantic_transformer=semantic, settings=_settings())
        file = FileRecord(path="src/components/Card.jsx", content=_component("Card"))
        result = asyncio.run(engine.transform(file, _spec()))
        assert semantic.calls == ["src/components/Card.jsx"]
        assert result.confidence == 96
        assert result.warnings == []

    def test_semantic_failure_falls_back_to_ast_result(self):
        semantic = FakeSemanticTransformer(fail_on={"src/components/Card.jsx"})
        engine = HybridTransformationEngine(semantic_transformer=semantic, settings=_settings())
        file = FileRecord(path="src/components/Card.jsx", content=_component("Card"))
        result = asyncio.run(engine.transform(file, _spec()))
        assert result.success
        assert result.code == _component("Card")
        assert result.confidence == 40
        assert result.requires_review
        assert "AI transformation failed: model unavailable. Using AST-only result." in result.warnings

    def test_concurrent_transforms_keep_their_own_rules(self):
        class YieldingSemanticTransformer(FakeSemanticTransformer):
            async def transform(self, code, spec, context):
                await asyncio.sleep(0)
                return await super().transform(code, spec, context)

        strict = _spec(rules={
            "mustPreserve": [],
            "mustTransform": [],
            "mustRemove": [],
            "mustRefactor": [],
            "breakingChanges": [{
                "id": "find-dom-node",
                "description": "findDOMNode was removed",
                "affectedAPIs": ["findDOMNode"],
            }],
            "deprecations": [],
        })
        lenient = _spec()
        code = "export const Card = () => {\n  findDOMNode(null);\n  return <div>Card</div>;\n};\n"
        engine = HybridTransformationEngine(semantic_transformer=YieldingSemanticTransformer(), settings=_settings())

        async def run_both():
            return await asyncio.gather(
                engine.transform(FileRecord(path="src/components/Strict.jsx", content=code), strict),
                engine.transform(FileRecord(path="src/components/Lenient.jsx", content=code), lenient),
            )

        strict_result, lenient_result = asyncio.run(run_both())
        assert strict_result.requires_review
        assert not lenient_result.requires_review

    def test_ast_failure_is_skipped_by_recovery(self):
        ast_pass = Mock()
        ast_pass.transform.side_effect = TransformationError("rule exploded")
        engine = HybridTransformationEngine(ast_pass=ast_pass, settings=_settings())
        code = "export const a = 1;\n"
        result = asyncio.run(engine.transform(FileRecord(path="lib/a.js", content=code), _spec()))
        assert result.success
        assert result.code == code
        assert "AST transformation skipped: rule exploded" in result.warnings

    def test_critical_error_keeps_original_code(self):
        rule_engine = Mock(spec=RuleEngine)
        rule_engine.validate_against_rules.side_effect = RuntimeError("validator crashed")
        engine = HybridTransformationEngine(rule_engine=rule_engine, settings=_settings())
        file = FileRecord(path="src/pages/Home.jsx", content=NAVIGATION_PAGE)
        result = asyncio.run(engine.transform(file, _spec()))

        assert not result.success
        assert result.code == NAVIGATION_PAGE
        assert result.new_file_path == "src/pages/Home.jsx"
        assert result.confidence == 0
        assert result.requires_review
        assert result.warnings == ["Critical error: validator crashed"]
        assert result.metadata.notes == ["Transformation failed: validator crashed"]

    def test_content_is_fetched(self):
        async def fetch(path):
            return _component("Fetched")

        engine = HybridTransformationEngine(content_fetcher=fetch, settings=_settings())
        result = asyncio.run(engine.transform(FileRecord(path="lib/Fetched.jsx"), _spec()))
        assert result.success
        assert result.original_code == _component("Fetched")

    def test_missing_content_without_fetcher(self):
        engine = HybridTransformationEngine(settings=_settings())
        result = asyncio.run(engine.transform(FileRecord(path="lib/a.js"), _spec()))
        assert not result.success
        assert result.warnings[0].startswith("Critical error: No content for lib/a.js")


# =========================================================================
# Validation
# =========================================================================


class TestValidation:
    def setup_method(self):
        self.engine = HybridTransformationEngine(settings=_settings())
        self.engine.rule_engine.load_rules(_spec())

    def test_import_resolution(self):
        code = (
            'import { Link } from "react-router-dom";\n'
            'import _ from "lodash";\n'
            'import Button from "@components/Button";\n'
            'import helper from "./helper";\n'
            'import { useRouter } from "next/navigation";\n'
        )
        parsed = parse_source(code, "app/page.tsx")
        assert self.engine.check_imports_resolved(parsed, _spec()) == [
            "react-router-dom (old framework import not transformed)",
            "lodash (invalid for target framework)",
        ]

    def test_old_framework_references(self):
        spec = _spec(rules={
            "mustPreserve": [],
            "mustTransform": [],
            "mustRemove": ["BrowserRouter"],
            "mustRefactor": [],
            "breakingChanges": [],
            "deprecations": [],
        })
        code = "const app = <BrowserRouter><App /></BrowserRouter>;\n"
        references = self.engine.check_old_framework_references(code, spec)
        assert r"\bBrowserRouter\b (found 2 occurrence(s))" in references
        assert "BrowserRouter (should have been removed)" in references

    def test_untransformed_import_fails_validation(self):
        code = 'import { Link } from "react-router-dom";\nexport const Nav = () => <Link to="/" />;\n'
        outcome = self.engine.validate_transformation(code, code, _spec(), "src/Nav.jsx", "components/Nav.tsx")
        assert not outcome.valid
        assert outcome.syntax_valid
        assert not outcome.imports_resolved
        assert not outcome.old_framework_references_removed
        assert any(w.startswith("Import resolution issues:") for w in outcome.warnings)
        assert any(w.startswith("Old framework references found:") for w in outcome.warnings)
        assert [v.severity for v in outcome.violations] == ["error"]
        assert len(outcome.warnings) == 2
        # syntax 30 + semantic 30, minus 10 for the error violation and 2 per warning
        assert outcome.confidence_score == 46

    def test_warning_violations_cost_only_the_clean_bonus(self):
        spec = _spec(rules={
            "mustPreserve": [],
            "mustTransform": [],
            "mustRemove": [],
            "mustRefactor": [],
            "breakingChanges": [],
            "deprecations": [{
                "id": "old-api",
                "deprecated": "oldApi",
                "replacement": "newApi",
                "version": "2.0",
            }],
        })
        code = "export function run() {\n  return oldApi();\n}\n"
        outcome = self.engine.validate_transformation(code, code, spec, "lib/run.js")
        assert outcome.valid
        assert outcome.violations
        assert all(v.severity == "warning" for v in outcome.violations)
        assert outcome.warnings == []
        assert outcome.confidence_score == 90

    def test_style_sheets_skip_script_checks(self):
        css = "body { margin: 0; }"
        outcome = self.engine.validate_transformation(css, css, _spec(), "src/index.css")
        assert outcome.valid
        assert outcome.violations == []
        assert outcome.confidence_score == 100


# =========================================================================
# Batch
# =========================================================================


class TestTransformBatch:
    def test_semantic_failure_does_not_abort_batch(self):
        semantic = FakeSemanticTransformer(fail_on={"src/components/B.jsx"})
        engine = HybridTransformationEngine(semantic_transformer=semantic, settings=_settings())
        files = [FileRecord(path=f"src/components/{n}.jsx", content=_component(n)) for n in "ABC"]

        batch = asyncio.run(engine.transform_batch(files, _spec(routing="pages-router")))

        assert set(batch.results) == {"components/A.tsx", "components/B.tsx", "components/C.tsx"}
        failed = batch.results["components/B.tsx"]
        assert failed.success
        assert failed.confidence == 40
        assert failed.requires_review
        for name in ("A", "C"):
            ok = batch.results[f"components/{name}.tsx"]
            assert ok.confidence == 96
            assert not ok.requires_review

        stats = batch.statistics
        assert stats.total_files == 3
        assert stats.successful_transformations == 2
        assert stats.requires_review == 1
        assert stats.files_with_errors == 1
        assert stats.average_confidence == 77

    def test_app_router_batch(self):
        sink = InMemoryEventSink()
        stages = []
        engine = HybridTransformationEngine(event_sink=sink, settings=_settings())
        files = [
            FileRecord(path="src/App.jsx", content="import './App.css';\nexport default function App() { return <div />; }\n"),
            FileRecord(path="src/index.js", content="import App from './App';\n"),
            FileRecord(path="src/index.css", content="@tailwind base;\nbody { margin: 0; }\n"),
            FileRecord(path="src/App.css", content="body { margin: 0; }\n.app { color: red; }\n"),
        ]

        batch = asyncio.run(engine.transform_batch(
            files, _spec(),
            on_progress=lambda stage, current, total, message: stages.append(stage),
            job_id="job-1",
        ))

        assert set(batch.results) == {
            "app/page.tsx",
            "app/globals.css",
            "app/layout.tsx",
            "app/error.tsx",
            "app/not-found.tsx",
            "tailwind.config.ts",
        }

        styles = batch.results["app/globals.css"]
        assert styles.code.count("@tailwind") == 3
        assert styles.code.count("body { margin: 0; }") == 1
        assert "Added Tailwind directives" in styles.metadata.notes
        assert styles.metadata.notes[0].startswith("Merged from: ")
        assert styles.confidence == 100

        layout = batch.results["app/layout.tsx"]
        assert "Generated layout file" in layout.metadata.notes
        assert "Route: (root)" in layout.metadata.notes

        config = batch.results["tailwind.config.ts"]
        assert config.metadata.dependencies_added == ["tailwindcss", "autoprefixer", "postcss"]

        assert stages[0] == "planning"
        assert stages[-1] == "complete"
        assert "transforming" in stages and "post-processing" in stages
        assert sink.events("job-1")[-1].type == "complete"

    def test_unplanned_style_sheets_pass_through(self):
        spec = MigrationSpecification.from_dict({
            "source": {"language": "JavaScript", "framework": "Vue"},
            "target": {"language": "JavaScript", "framework": "Nuxt"},
        })
        engine = HybridTransformationEngine(settings=_settings())
        files = [FileRecord(path="src/style.css", content="a { color: red; }")]
        batch = asyncio.run(engine.transform_batch(files, spec))
        result = batch.results["src/style.css"]
        assert result.code == "a { color: red; }"
        assert result.metadata.notes == ["Style sheet kept unchanged"]

    def test_unfetchable_file_becomes_error_result(self):
        engine = HybridTransformationEngine(settings=_settings())
        files = [
            FileRecord(path="lib/missing.js"),
            FileRecord(path="lib/ok.js", content="export const ok = true;\n"),
        ]
        batch = asyncio.run(engine.transform_batch(files, _spec(routing="pages-router")))
        missing = batch.results["lib/missing.js"]
        assert not missing.success
        assert missing.warnings[0].startswith("Critical error in batch:")
        assert batch.results["lib/Ok.tsx"].success

    def test_small_batch_size_processes_every_file(self):
        settings = _settings()
        settings.batch.size = 1
        engine = HybridTransformationEngine(settings=settings)
        files = [FileRecord(path=f"lib/m{i}.js", content=f"export const m{i} = {i};\n") for i in range(3)]
        batch = asyncio.run(engine.transform_batch(files, _spec(routing="pages-router")))
        assert len(batch.results) == 3

    def test_malformed_rules_are_fatal(self):
        engine = HybridTransformationEngine(settings=_settings())
        with pytest.raises(RuleSetError, match="must be an array"):
            asyncio.run(engine.transform_batch([], {"rules": {"mustPreserve": "x"}}))
