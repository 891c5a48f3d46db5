"""Tests for Registry."""

from unittest.mock import MagicMock

from extkit.extensions.contract import Extension
from extkit.extensions.registry import Registry


class TestRegistry:
    """Identity, ordering and removal notification."""

    def test_add_assigns_registration_order(self) -> None:
        registry = Registry()
        a, b = Extension("a", "o/a"), Extension("b", "o/b")
        assert registry.add(a) is True
        assert registry.add(b) is True
        assert (a.seq, b.seq) == (0, 1)
        assert [e.name for e in registry.all()] == ["a", "b"]
        assert len(registry) == 2
        assert "a" in registry

    def test_duplicate_keeps_first(self) -> None:
        registry = Registry()
        first = Extension("a", "o/a")
        registry.add(first)
        assert registry.add(Extension("a", "other/a")) is False
        assert registry.get("a") is first
        assert len(registry) == 1

    def test_get_unknown(self) -> None:
        assert Registry().get("missing") is None

    def test_remove_notifies_listeners(self) -> None:
        listener = MagicMock()
        late = MagicMock()
        registry = Registry(on_remove=[listener])
        registry.add_remove_listener(late)
        ext = Extension("a", "o/a")
        registry.add(ext)
        assert registry.remove("a") is True
        listener.assert_called_once_with(ext)
        late.assert_called_once_with(ext)
        assert "a" not in registry

    def test_remove_unknown_is_silent(self) -> None:
        listener = MagicMock()
        registry = Registry(on_remove=[listener])
        assert registry.remove("nope") is False
        listener.assert_not_called()

    def test_iteration_is_a_snapshot(self) -> None:
        registry = Registry()
        registry.add(Extension("a", "o/a"))
        registry.add(Extension("b", "o/b"))
        names = []
        for ext in registry:
            names.append(ext.name)
            registry.remove(ext.name)
        assert names == ["a", "b"]
        assert len(registry) == 0

    def test_setdefault_returns_stored_entry(self) -> None:
        registry = Registry()
        first = Extension("a", "o/a")
        assert registry.setdefault(first) is first
        assert registry.setdefault(Extension("a", "other/a")) is first
        assert registry.add(first) is False
        assert len(registry) == 1
