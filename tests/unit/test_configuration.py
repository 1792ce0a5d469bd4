"""
Project configuration unit tests.

Checks that packaging metadata, registered markers and the command-line
entry points stay in step with the code.
"""

import importlib
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent.parent

# import name -> distribution name on the package index
RUNTIME_IMPORTS = {
    "duckdb": "duckdb",
    "fastapi": "fastapi",
    "numpy": "numpy",
    "pandas": "pandas",
    "pydantic": "pydantic",
    "pyrankvote": "pyrankvote",
    "uvicorn": "uvicorn",
}


def requirement_names(requirements):
    names = set()
    for requirement in requirements:
        for separator in "<>=!~[; ":
            requirement = requirement.split(separator)[0]
        names.add(requirement.lower())
    return names


@pytest.fixture(scope="module")
def pyproject():
    tomllib = pytest.importorskip("tomllib")
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        return tomllib.load(f)


@pytest.mark.unit
@pytest.mark.smoke
def test_runtime_dependencies_declared(pyproject):
    declared = requirement_names(pyproject["project"]["dependencies"])

    assert set(RUNTIME_IMPORTS.values()) <= declared


@pytest.mark.unit
def test_test_extra_covers_test_client(pyproject):
    test_extra = requirement_names(pyproject["project"]["optional-dependencies"]["test"])

    assert {"pytest", "httpx"} <= test_extra


@pytest.mark.unit
def test_packages_found_under_src(pyproject):
    find = pyproject["tool"]["setuptools"]["packages"]["find"]

    assert find["where"] == ["src"]
    for package in ("analysis", "data", "web"):
        assert f"{package}*" in find["include"]
        assert (PROJECT_ROOT / "src" / package).is_dir()


@pytest.mark.unit
@pytest.mark.smoke
@pytest.mark.parametrize("module", sorted(RUNTIME_IMPORTS))
def test_runtime_dependency_imports(module):
    importlib.import_module(module)


@pytest.mark.unit
def test_markers_registered(pytestconfig):
    registered = {line.split(":")[0] for line in pytestconfig.getini("markers")}

    assert {"unit", "integration", "golden", "invariant", "smoke", "critical"} <= registered


@pytest.mark.unit
@pytest.mark.parametrize(
    "script",
    ["load_ballots.py", "tabulate_contests.py", "verify_results.py", "start_server.py"],
)
def test_cli_scripts_present(script):
    assert (PROJECT_ROOT / "scripts" / script).is_file()


@pytest.mark.unit
def test_reports_db_environment_variable():
    """The web app reads its database from a documented variable."""
    from web.main import REPORTS_DB_ENV

    assert REPORTS_DB_ENV == "RANKED_VOTE_REPORTS_DB"
