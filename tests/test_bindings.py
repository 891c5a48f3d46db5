"""Tests for key binding parsing and KeyBindingRegistry."""

import pytest

from extkit.extensions.bindings import KeyBindingRegistry, parse_key_binding
from extkit.extensions.contract import KeyBinding


class TestParse:
    """parse_key_binding shapes."""

    def test_string(self) -> None:
        assert parse_key_binding("<leader>x") == KeyBinding("<leader>x")

    def test_list_with_options(self) -> None:
        binding = parse_key_binding(["gd", ":Def<CR>", {"mode": ["n", "v"], "desc": "Go", "silent": True}])
        assert binding.rhs == ":Def<CR>"
        assert binding.modes == ("n", "v")
        assert binding.desc == "Go"
        assert binding.options == {"silent": True}

    def test_mapping(self) -> None:
        binding = parse_key_binding({"lhs": "K", "modes": "x", "options": {"nowait": True}})
        assert binding.modes == ("x",)
        assert binding.options == {"nowait": True}

    @pytest.mark.parametrize("raw", ["", [], [1], {"rhs": "x"}, 5])
    def test_invalid(self, raw: object) -> None:
        with pytest.raises(ValueError):
            parse_key_binding(raw)


class TestRegistry:
    """Binding lookups and rebinds."""

    def test_bind_per_mode(self) -> None:
        registry = KeyBindingRegistry()
        binding = KeyBinding("gd", ":Def<CR>", modes=("n", "v"))
        registry.bind("lsp", binding)
        assert registry.lookup("gd") is binding
        assert registry.lookup("gd", "v") is binding
        assert registry.lookup("gd", "i") is None
        assert len(registry) == 2

    def test_rebind_same_is_safe(self) -> None:
        registry = KeyBindingRegistry()
        binding = KeyBinding("gd")
        registry.bind("lsp", binding)
        registry.bind("lsp", binding)
        assert registry.bound_by("lsp") == [binding]

    def test_rebind_other_extension_wins(self, caplog: pytest.LogCaptureFixture) -> None:
        registry = KeyBindingRegistry()
        registry.bind("a", KeyBinding("K", "a"))
        registry.bind("b", KeyBinding("K", "b"))
        assert registry.lookup("K").rhs == "b"
        assert registry.bound_by("a") == []
        assert "rebound from a to b" in caplog.text
