"""Smoke test: verify the package and its subpackages can be imported.

This catches dead imports, missing symbols, and broken top-level code
that unit tests miss because they import submodules directly.
"""


def test_package_imports():
    """Importing the package should not raise ImportError."""
    import mnote  # noqa: F401


def test_public_names_resolve():
    """Every name in ``__all__`` should exist."""
    import mnote
    import mnote.commands
    import mnote.layout

    for module in (mnote, mnote.commands, mnote.layout):
        for name in module.__all__:
            assert hasattr(module, name), f"{module.__name__}.{name}"


def test_serialization_imports():
    from mnote.serialization import codec, document, playback  # noqa: F401
