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

from reservations.domain.errors import ConflictError, NotFoundError
from reservations.domain.models import ReservationRequest
from reservations.repository.data_repository import DataRepository
from reservations.services.reservation_service import ReservationService
from reservations.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="reservations-env-")

    # CHECK 1: Python version >= 3.10
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

    # CHECK 2: Required packages importable
    package_names = ["fastapi", "uvicorn", "pydantic", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_names:
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
            database_path=Path(temp_dir) / "reservations_validation.db",
        )
        repository = DataRepository(validation_settings)
        service = ReservationService(repository=repository, settings=validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Create, conflict, cancel round trip
        try:
            first = service.create_reservation(
                ReservationRequest(
                    resource_type="SCIENCE_LAB",
                    date=date(2026, 3, 9),
                    shift="MORNING",
                    periods=("1st", "2nd"),
                    requester="Validation",
                    group_label="Check",
                )
            )
            try:
                service.create_reservation(
                    ReservationRequest(
                        resource_type="SCIENCE_LAB",
                        date=date(2026, 3, 9),
                        shift="MORNING",
                        periods=("2nd",),
                        requester="Validation 2",
                        group_label="Check",
                    )
                )
                raise RuntimeError("overlapping reservation was accepted")
            except ConflictError:
                pass
            service.cancel_reservation(first.id)
            try:
                service.cancel_reservation(first.id)
                raise RuntimeError("second cancellation succeeded")
            except NotFoundError:
                pass
            ok, line = _print_result("Reservation create/conflict/cancel", True)
        except Exception as exc:
            ok, line = _print_result("Reservation create/conflict/cancel", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Demo seeding
        try:
            seeded = repository.seed_demo_reservations_if_empty()
            if seeded <= 0:
                raise RuntimeError("no demo reservations inserted")
            ok, line = _print_result("Demo reservation seeding", True, f": {seeded} rows")
        except Exception as exc:
            ok, line = _print_result("Demo reservation seeding", False, str(exc))
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
