"""Tests for the Jinja2 template registry and its filters."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from patentrag.errors import InvalidInputError, TemplateNotFoundError, TemplateRenderError
from patentrag.prompts.templates import TemplateRegistry, bullet_list, join_list, title_case, truncate_list

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestFilters:
    def test_join_list(self):
        assert join_list(["US", "CN"]) == "US, CN"
        assert join_list(["a", "b"], " | ") == "a | b"
        assert join_list(None) == ""

    def test_truncate_list(self):
        assert truncate_list(["a", "b", "c"], 2) == ["a", "b", "(+1 more)"]
        assert truncate_list(["a"], 3) == ["a"]

    def test_bullet_list(self):
        assert bullet_list(["one", "two"]) == "- one\n- two"
        assert bullet_list(["x"], "*") == "* x"

    def test_title_case(self):
        assert title_case("patent_landscape") == "Patent Landscape"
        assert title_case("fto") == "Fto"


# ---------------------------------------------------------------------------
# TemplateRegistry
# ---------------------------------------------------------------------------


class TestTemplateRegistry:
    @pytest.fixture
    def registry(self) -> TemplateRegistry:
        return TemplateRegistry()

    def test_register_and_render(self, registry: TemplateRegistry):
        info = registry.register("greeting", "Hello {{ name }}!")
        assert info.name == "greeting"
        assert info.version == "v1"
        assert registry.render("greeting", {"name": "counsel"}) == "Hello counsel!"

    def test_non_mapping_data_exposed_as_data(self, registry: TemplateRegistry):
        registry.register("echo", "{{ data }}")
        assert registry.render("echo", 42) == "42"

    def test_conditionals_loops_and_filters(self, registry: TemplateRegistry):
        body = (
            "{% if patents %}Patents: {{ patents | truncate_list(2) | join_list }}.{% endif %} "
            "{% for j in jurisdictions %}[{{ j | upper }}]{% endfor %}"
        )
        registry.register("summary", body)
        out = registry.render("summary", {"patents": ["US1", "US2", "US3"], "jurisdictions": ["us", "ep"]})
        assert out == "Patents: US1, US2, (+1 more). [US][EP]"

    def test_undefined_variable_fails(self, registry: TemplateRegistry):
        registry.register("strict", "Hello {{ name }}")
        with pytest.raises(TemplateRenderError):
            registry.render("strict", {})

    def test_unknown_template(self, registry: TemplateRegistry):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            registry.render("nope")
        assert isinstance(exc_info.value, KeyError)
        assert str(exc_info.value) == "template 'nope' not found"

    @pytest.mark.parametrize("name,body", [("", "body"), ("  ", "body"), ("name", ""), ("name", "   ")])
    def test_empty_name_or_body_rejected(self, registry: TemplateRegistry, name: str, body: str):
        with pytest.raises(InvalidInputError):
            registry.register(name, body)

    def test_syntax_error_rejected(self, registry: TemplateRegistry):
        with pytest.raises(InvalidInputError, match="invalid syntax"):
            registry.register("broken", "{% if %}")
        assert "broken" not in registry

    def test_reregister_replaces(self, registry: TemplateRegistry):
        registry.register("t", "old")
        registry.register("t", "new", version="v2")
        assert registry.render("t") == "new"
        assert registry.get_info("t").version == "v2"
        assert len(registry) == 1

    def test_list_sorted(self, registry: TemplateRegistry):
        for name in ("zeta", "alpha", "mid"):
            registry.register(name, name)
        assert [i.name for i in registry.list()] == ["alpha", "mid", "zeta"]

    def test_concurrent_register_and_render(self, registry: TemplateRegistry):
        registry.register("shared", "v{{ n }}")

        def work(i: int) -> str:
            registry.register(f"t{i}", "x")
            return registry.render("shared", {"n": i})

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(work, range(50)))

        assert results == [f"v{i}" for i in range(50)]
        assert len(registry) == 51
