"""
Tests for version module.

Covers __version__ attribute and check_version_consistency().
"""

import re

import meals_db
from meals_db.version import check_version_consistency


class TestVersionAttribute:
    """Test __version__ is properly set."""

    def test_version_format(self):
        """__version__ matches semver pattern (X.Y.Z)."""
        assert re.match(r"^\d+\.\d+\.\d+$", meals_db.__version__)


class TestCheckVersionConsistency:
    """Test check_version_consistency() function."""

    def test_consistency_success(self, tmp_path):
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text(f'[project]\nversion = "{meals_db.__version__}"\n')

        is_consistent, message = check_version_consistency(pyproject)

        assert is_consistent is True
        assert "verified" in message.lower()

    def test_consistency_mismatch(self, tmp_path):
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text('[project]\nversion = "99.99.99"\n')

        is_consistent, message = check_version_consistency(pyproject)

        assert is_consistent is False
        assert "mismatch" in message.lower()
        assert meals_db.__version__ in message
        assert "99.99.99" in message

    def test_packaged_install_without_pyproject(self, tmp_path):
        is_consistent, message = check_version_consistency(tmp_path / "missing.toml")

        assert is_consistent is True
        assert meals_db.__version__ in message

    def test_unreadable_toml(self, tmp_path):
        pyproject = tmp_path / "pyproject.toml"
        pyproject.write_text("[project\nversion = ")

        is_consistent, message = check_version_consistency(pyproject)

        assert is_consistent is False
        assert "failed to read" in message.lower()

    def test_repository_pyproject_matches(self):
        """The checked-in pyproject.toml agrees with the package."""
        is_consistent, _ = check_version_consistency()
        assert is_consistent is True
