"""Safety tests to ensure the test suite doesn't touch real data.

These tests verify that running the test suite does NOT modify:
- ./data directory (shipped configuration)
- ./db directory (the default database)

Every test runs in its own tmp_path with its own SQLite file (see
conftest.py), so paths here are resolved against the project root.
"""

import hashlib
import os
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _hash_directory(path: Path) -> str | None:
    """Create a hash of directory structure and file metadata.

    Returns None if directory doesn't exist.
    """
    if not path.exists():
        return None

    hasher = hashlib.sha256()

    for root, dirs, files in os.walk(path):
        # Sort for consistent ordering
        dirs.sort()
        files.sort()

        for filename in files:
            filepath = Path(root) / filename
            hasher.update(str(filepath.relative_to(path)).encode())
            stat = filepath.stat()
            hasher.update(str(stat.st_size).encode())
            hasher.update(str(int(stat.st_mtime)).encode())

    return hasher.hexdigest()


@pytest.fixture(scope="module")
def directory_state():
    """Capture ./data and ./db before the tests in this module."""
    return {
        name: {"exists": (PROJECT_ROOT / name).exists(), "hash": _hash_directory(PROJECT_ROOT / name)}
        for name in ("data", "db")
    }


class TestDirectorySafety:
    """Tests ensuring ./data and ./db are never modified."""

    @pytest.mark.parametrize("name", ["data", "db"])
    def test_directory_not_created(self, directory_state, name):
        if not directory_state[name]["exists"] and (PROJECT_ROOT / name).exists():
            pytest.fail(f"./{name} was created during test run. All tests MUST use tmp_path.")

    @pytest.mark.parametrize("name", ["data", "db"])
    def test_directory_not_modified(self, directory_state, name):
        if directory_state[name]["exists"]:
            if _hash_directory(PROJECT_ROOT / name) != directory_state[name]["hash"]:
                pytest.fail(f"./{name} was modified during test run. All tests MUST use tmp_path.")


class TestTestIsolation:
    """Meta-tests ensuring test files use temporary databases."""

    def test_no_default_database(self):
        """No test may open the default database path."""
        violations = []
        for test_file in sorted((PROJECT_ROOT / "tests").rglob("test_*.py")):
            if test_file.name == Path(__file__).name:
                continue
            content = test_file.read_text(encoding="utf-8")
            if "init_db()" in content:
                violations.append(f"{test_file.name}: Calls init_db() without explicit temp path")
            if 'Path("db")' in content and "tmp_path" not in content:
                violations.append(f"{test_file.name}: Uses Path('db') without tmp_path")

        if violations:
            pytest.fail("Test files may not be properly isolated:\n" + "\n".join(f"  - {v}" for v in violations))
