"""Architectural tests for the onboarding service layering.

Static file/AST checks only; no application code is imported or executed.
The step engine and form definitions stay free of web and database
concerns, SQL lives in repositories, and every route module exposes a
``router`` that the API registry includes.
"""

from __future__ import annotations

import ast
import re
from pathlib import Path
from typing import Iterable, List, Set

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[2]
APP_DIR = PROJECT_ROOT / "app"
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"

ENGINE_MODULES = (
    "step_engine",
    "validation",
    "boolean_maps",
    "field_normalizer",
    "leaf_validators",
    "visibility_rules",
)
ROUTE_MODULES = ("health", "auth", "forms", "clients", "onboarding")


def _iter_py_files(root: Path) -> Iterable[Path]:
    for path in sorted(root.rglob("*.py")):
        if "__pycache__" in path.parts:
            continue
        yield path


def _parse_ast(path: Path) -> ast.Module:
    try:
        return ast.parse(path.read_text(encoding="utf-8"))
    except SyntaxError as exc:
        pytest.fail(f"Syntax error in {path}: {exc}")


def _imported_roots(tree: ast.AST) -> Set[str]:
    roots: Set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            roots.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            roots.add(node.module.split(".")[0])
    return roots


def _engine_files() -> List[Path]:
    files = [APP_DIR / "logic" / f"{name}.py" for name in ENGINE_MODULES]
    files.extend(_iter_py_files(APP_DIR / "forms"))
    return files


def _rel(path: Path) -> str:
    return str(path.relative_to(PROJECT_ROOT))


def test_engine_and_forms_have_no_web_or_database_imports():
    offenders = []
    for path in _engine_files():
        assert path.exists(), f"Missing engine module: {_rel(path)}"
        leaked = _imported_roots(_parse_ast(path)) & {"fastapi", "starlette", "sqlalchemy"}
        if leaked:
            offenders.append(f"{_rel(path)}: {sorted(leaked)}")
    assert not offenders, "Engine modules must stay framework free:\n" + "\n".join(offenders)


def test_routes_do_not_touch_the_database_directly():
    offenders = []
    for path in _iter_py_files(APP_DIR / "routes"):
        tree = _parse_ast(path)
        if "sqlalchemy" in _imported_roots(tree):
            offenders.append(_rel(path))
    assert not offenders, f"Routes must go through repositories: {offenders}"


def test_sql_is_confined_to_repositories_and_db_package():
    allowed_dirs = {APP_DIR / "db"}
    offenders = []
    for path in _iter_py_files(APP_DIR):
        if path.parent in allowed_dirs or path.name.startswith("repository_"):
            continue
        if re.search(r"\bsql_text\(", path.read_text(encoding="utf-8")):
            offenders.append(_rel(path))
    assert not offenders, f"sql_text used outside repositories: {offenders}"


@pytest.mark.parametrize("module", ROUTE_MODULES)
def test_route_modules_expose_router(module):
    tree = _parse_ast(APP_DIR / "routes" / f"{module}.py")
    assigned = {
        target.id
        for node in tree.body
        if isinstance(node, ast.Assign)
        for target in node.targets
        if isinstance(target, ast.Name)
    }
    assert "router" in assigned, f"app/routes/{module}.py must define router"

    registry = (APP_DIR / "routes" / "__init__.py").read_text(encoding="utf-8")
    assert f"from app.routes.{module} import router as {module}_router" in registry
    assert f"include_router({module}_router" in registry


def test_no_bare_except_in_application_code():
    offenders = []
    for path in _iter_py_files(APP_DIR):
        for node in ast.walk(_parse_ast(path)):
            if isinstance(node, ast.ExceptHandler) and node.type is None:
                offenders.append(f"{_rel(path)}:{node.lineno}")
    assert not offenders, f"Bare except clauses: {offenders}"


def test_migrations_define_onboarding_schema():
    files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    assert files, "migrations/ must contain SQL files"
    misnamed = [f.name for f in files if not re.match(r"^\d{3}_\w+\.sql$", f.name)]
    assert not misnamed, f"Migrations must be named NNN_description.sql: {misnamed}"
    sql = "\n".join(f.read_text(encoding="utf-8") for f in files)
    for table in ("users", "brokers", "clients", "client_brokers", "forms", "client_form_selections",
                  "onboardings", "onboarding_steps"):
        assert re.search(rf"CREATE\s+TABLE\s+IF\s+NOT\s+EXISTS\s+{table}\s*\(", sql), f"missing table {table}"
    onboardings = re.search(r"CREATE\s+TABLE\s+IF\s+NOT\s+EXISTS\s+onboardings\s*\((.*?)\);", sql, re.DOTALL)
    assert onboardings is not None
    for column in ("version", "status", "step1_rr_name", "step1_account_type"):
        assert re.search(rf"\b{column}\b", onboardings.group(1)), f"onboardings.{column} missing"


def test_seeded_form_codes_match_registry():
    seed = "\n".join(f.read_text(encoding="utf-8") for f in sorted(MIGRATIONS_DIR.glob("*.sql")))
    registry = (APP_DIR / "forms" / "registry.py").read_text(encoding="utf-8")
    for code in ("INVESTOR_PROFILE", "SFC", "BAIODF", "BAIV_506C"):
        assert f"'{code}'" in seed, f"form {code} is not seeded"
    for module in ("investor_profile", "statement_of_financial_condition", "baiodf", "baiv_506c"):
        assert f"app.forms.{module}" in registry
