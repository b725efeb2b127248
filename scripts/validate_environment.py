#!/usr/bin/env python3
"""Validate local reservation engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from reservation_engine.domain.models import GuestRequest, GuestType
from reservation_engine.repository.data_repository import DataRepository
from reservation_engine.services.reservation_service import ReservationWorkflowService
from reservation_engine.utils.config import get_settings

SEPARATOR_LINE = "=" * 44

SEEDED_ROOM_COUNT = 8
SEEDED_CATALOG_COUNT = 4


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="reservation-env-")

    # CHECK 1 — Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 — Required packages importable
    package_specs = ["fastapi", "uvicorn", "pydantic", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_specs:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "reservation_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3 — Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 — Demo inventory and catalog seeding
        check_in, check_out = date(2026, 3, 1), date(2026, 3, 3)
        try:
            repository.seed_demo_data()
            rooms = repository.get_available_rooms(check_in, check_out)
            catalog = repository.list_active_charges()
            if len(rooms) != SEEDED_ROOM_COUNT or len(catalog) != SEEDED_CATALOG_COUNT:
                raise RuntimeError(
                    f"expected {SEEDED_ROOM_COUNT} rooms and {SEEDED_CATALOG_COUNT} charges, "
                    f"got {len(rooms)} and {len(catalog)}"
                )
            ok, line = _print_result(
                "Demo seed",
                True,
                f": {len(rooms)} rooms, {len(catalog)} catalog charges",
            )
        except Exception as exc:
            ok, line = _print_result("Demo seed", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 — Allocation proposal and quote
        service = ReservationWorkflowService(repository=repository, settings=validation_settings)
        try:
            request = GuestRequest(
                guest_count=5,
                guest_type=GuestType.FRIENDS,
                check_in=check_in,
                check_out=check_out,
            )
            options = service.propose_allocations(request)
            if len(options) != 3:
                raise RuntimeError(f"expected 3 options, got {len(options)}")
            quote = service.quote(options[0].allocations, [], check_in, check_out)
            ok, line = _print_result(
                "Allocation and quote",
                True,
                f": {options[0].room_count} rooms, total={quote.breakdown.total}",
            )
        except Exception as exc:
            ok, line = _print_result("Allocation and quote", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Reservation Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
