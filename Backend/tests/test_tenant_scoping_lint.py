"""
Runs the tenant scoping lint against the backend and checks that it catches
the mistakes it is meant to catch.

Run with: pytest Backend/tests/test_tenant_scoping_lint.py -v
"""

import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "check_tenant_scoping.py"


@pytest.fixture(scope="module")
def lint():
    spec = importlib.util.spec_from_file_location("check_tenant_scoping", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_backend_has_no_blocking_findings(lint):
    findings = lint.scan_directory(lint.SCAN_ROOT)
    blocking = lint.blocking_findings(findings)
    assert blocking == [], "\n".join(str(f) for f in blocking)


def test_strict_mode_passes(lint, capsys):
    assert lint.main(["--strict"]) == 0


def test_unscoped_query_is_flagged(lint):
    source = (
        "async def leak(session):\n"
        "    result = await session.execute(select(Customer))\n"
        "    return result.scalars().all()\n"
    )
    findings = lint.scan_source(source, Path("leak.py"))

    assert [(f.severity, f.line_num) for f in findings] == [("HIGH", 2)]


def test_scoped_query_on_following_lines_is_accepted(lint):
    source = (
        "stmt = (\n"
        "    select(Reservation)\n"
        "    .where(tenant_filter(Reservation, db.organization_id))\n"
        ")\n"
    )
    assert lint.scan_source(source, Path("ok.py")) == []


def test_primary_key_lookup_is_flagged(lint):
    findings = lint.scan_source("svc = await session.get(Service, service_id)\n", Path("x.py"))
    assert [f.severity for f in findings] == ["HIGH"]


def test_hardcoded_organization_id_is_critical(lint):
    source = 'stmt = stmt.where(organization_id="8f14e45f-ceea-467a-9575-1d2e3a4b5c6d")\n'
    findings = lint.scan_source(source, Path("x.py"))
    assert findings[0].severity == "CRITICAL"


def test_suppression_comment(lint):
    source = "rows = select(Customer)  # noqa: tenant-scoping\n"
    assert lint.scan_source(source, Path("x.py")) == []


def test_demo_slug_allowed_only_in_seed(lint):
    source = 'slug = DEMO_ORG_SLUG\n'
    assert lint.scan_source(source, Path("seed.py")) == []
    assert [f.severity for f in lint.scan_source(source, Path("routes.py"))] == ["INFO"]
