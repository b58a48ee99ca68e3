import importlib


def _read_pyproject_version() -> str:
    import re
    from pathlib import Path

    txt = (Path(__file__).resolve().parents[1] / "pyproject.toml").read_text(encoding="utf-8")
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    assert m, "Could not locate [project].version in pyproject.toml"
    return m.group(1)


def test_convenience_imports_work():
    import amber_engine

    # Access via attribute (lazy import)
    assert hasattr(amber_engine, "Encounter")
    assert hasattr(amber_engine, "compute_consequence")

    from amber_engine import Encounter, SubjectCatalog, compute_consequence  # noqa: F401
    from amber_engine import ShiftDecisionLog, LogSigner  # noqa: F401

    for name in amber_engine.__all__:
        assert getattr(amber_engine, name) is not None, name

    importlib.reload(amber_engine)


def test_unknown_attribute_raises():
    import amber_engine

    try:
        amber_engine.NotAThing
    except AttributeError as e:
        assert "NotAThing" in str(e)
    else:
        raise AssertionError("expected AttributeError")


def test_version_export_matches_pyproject():
    import amber_engine

    assert hasattr(amber_engine, "__version__")
    assert amber_engine.__version__ == _read_pyproject_version()
