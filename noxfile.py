"""Nox sessions for stackrite.

Run with: uv run nox [session]
"""

import shutil
from pathlib import Path

import nox

nox.options.default_venv_backend = "uv"
nox.options.stop_on_first_error = True
nox.options.error_on_external_run = True

# Format and lint first, then tests under coverage, then the combined report
nox.options.sessions = ["format", "lint", "cov-clean", "test", "cov-combine"]

PYTHON_VERSIONS = ["3.9", "3.10", "3.11", "3.12", "3.13", "3.14"]
TOOLS_PYTHON = PYTHON_VERSIONS[-1]

COVERAGE_OUTPUTS = ["htmlcov", "coverage.xml", "tests-results.xml"]


@nox.session(python=PYTHON_VERSIONS)
def test(session):
    """Run the test suite with coverage on each supported Python."""
    session.install(".[test]")
    test_args = session.posargs or ["tests"]
    # Each version writes its own .coverage.* file
    junit_args = []
    if session.python == PYTHON_VERSIONS[-1]:
        junit_args = ["--junit-xml=tests-results.xml"]
    session.run(
        "coverage",
        "run",
        "--parallel-mode",
        "--source",
        "stackrite",
        "-m",
        "pytest",
        "-qq",
        *junit_args,
        *test_args,
    )


@nox.session(python=TOOLS_PYTHON)
def lint(session):
    """Ruff checks and ty type checking."""
    session.install("ruff", "ty")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")
    session.run("ty", "check", "stackrite")


@nox.session(python=TOOLS_PYTHON)
def format(session):
    session.install("ruff")
    session.run("ruff", "check", "--fix", ".")
    session.run("ruff", "format", ".")


@nox.session(python=TOOLS_PYTHON, name="cov-clean")
def cov_clean(session):
    """Remove coverage data and reports from earlier runs."""
    for path in Path(".").glob(".coverage*"):
        if path.is_file():
            path.unlink()
    for name in COVERAGE_OUTPUTS:
        path = Path(name)
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()


@nox.session(python=TOOLS_PYTHON, name="cov-combine")
def cov_combine(session):
    """Combine the per-version coverage files into one report."""
    session.install("coverage")
    session.run("coverage", "combine", "--keep", success_codes=[0, 1])
    session.run("coverage", "report", "-m")
    session.run("coverage", "html")
    session.run("coverage", "xml")


@nox.session(python=TOOLS_PYTHON)
def clean(session):
    """Remove build artifacts and caches."""
    session.notify("cov-clean")
    for pattern in ["**/__pycache__", "dist", "build", "*.egg-info", ".pytest_cache", ".ruff_cache", ".nox"]:
        for path in Path(".").glob(pattern):
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink()
