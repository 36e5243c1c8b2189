"""Tests for the LLM-assisted semantic pass."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest
from stackloom.core.migration.errors import AIServiceError
from stackloom.core.migration.models import MigrationSpecification, TransformationContext
from stackloom.core.migration.prompts import build_transform_prompt
from stackloom.core.migration.semantic_pass import (
    LLMSemanticTransformer,
    create_llm,
    create_semantic_transformer,
    parse_semantic_response,
)
from stackloom.setting import SemanticSettings


SPEC = MigrationSpecification.from_dict({
    "source": {"language": "JavaScript", "framework": "React", "version": "18"},
    "target": {"language": "TypeScript", "framework": "Next.js", "version": "14"},
    "mappings": {"imports": {"react-router-dom": "next/navigation"}},
})

CONTEXT = TransformationContext(file_path="src/pages/Home.jsx", file_type="page", dependencies=["react"])


def _llm(text=None, error=None):
    llm = Mock()
    if error is not None:
        llm.acomplete = AsyncMock(side_effect=error)
    else:
        llm.acomplete = AsyncMock(return_value=Mock(text=text))
    return llm


class TestParseSemanticResponse:
    def test_json_response(self):
        raw = json.dumps({"code": "const a = 1;", "confidence": 85, "warnings": ["check"], "requiresReview": False})
        result = parse_semantic_response(raw)
        assert result.code == "const a = 1;"
        assert result.confidence == 85
        assert result.warnings == ["check"]
        assert not result.requires_review

    def test_fenced_json(self):
        raw = '```json\n{"code": "x", "confidence": 70}\n```'
        result = parse_semantic_response(raw)
        assert result.code == "x"
        assert result.requires_review

    def test_json_embedded_in_prose(self):
        raw = 'Here you go: {"code": "y", "confidence": 150} Hope this helps.'
        result = parse_semantic_response(raw)
        assert result.code == "y"
        assert result.confidence == 100

    def test_raw_code_response(self):
        raw = "export default function Page() {}"
        result = parse_semantic_response(raw)
        assert result.code == raw
        assert result.confidence == 50
        assert result.requires_review
        assert result.warnings == ["Response format was unexpected"]


class TestPrompt:
    def test_prompt_carries_job_context(self):
        prompt = build_transform_prompt("const a = 1;", SPEC, CONTEXT)
        assert "Transform the following React file to Next.js." in prompt
        assert "File Path: src/pages/Home.jsx" in prompt
        assert "react-router-dom -> next/navigation" in prompt
        assert "Must Preserve: (none)" in prompt
        assert "```JavaScript\nconst a = 1;\n```" in prompt


class TestLLMSemanticTransformer:
    def test_transform(self):
        llm = _llm(json.dumps({"code": "migrated", "confidence": 88, "requiresReview": False}))
        transformer = LLMSemanticTransformer(llm=llm)
        result = asyncio.run(transformer.transform("original", SPEC, CONTEXT))
        assert result.code == "migrated"
        assert result.confidence == 88
        prompt = llm.acomplete.await_args.args[0]
        assert "NEXT.JS APP ROUTER NOTES" in prompt

    def test_provider_failure_becomes_ai_service_error(self):
        transformer = LLMSemanticTransformer(llm=_llm(error=ConnectionError("refused")), provider="ollama")
        with pytest.raises(AIServiceError, match="LLM call failed: refused") as exc:
            asyncio.run(transformer.transform("original", SPEC, CONTEXT))
        assert exc.value.recoverable
        assert exc.value.provider == "ollama"

    def test_unavailable_without_llm(self):
        transformer = LLMSemanticTransformer()
        assert not transformer.is_available()
        with pytest.raises(AIServiceError) as exc:
            asyncio.run(transformer.transform("original", SPEC, CONTEXT))
        assert not exc.value.recoverable


class TestFactories:
    def test_disabled(self):
        assert create_semantic_transformer(SemanticSettings(enabled=False)) is None

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unsupported LLM provider: bedrock"):
            create_llm(SemanticSettings(provider="bedrock"))
