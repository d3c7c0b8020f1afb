"""Detect an installed package that has drifted from its source tree."""

import tomllib
from pathlib import Path

PYPROJECT_PATH = Path(__file__).parent.parent.parent / "pyproject.toml"


def check_version_consistency(
    pyproject_path: Path = PYPROJECT_PATH,
) -> tuple[bool, str]:
    """Compare the runtime ``__version__`` with ``pyproject.toml``.

    An editable install always agrees; a stale wheel or copied build does
    not, which is worth a warning at server startup.

    Returns:
        Tuple of (is_consistent, message).
    """
    from . import __version__ as runtime_version

    if not pyproject_path.exists():
        # Installed from a wheel: nothing to compare against
        return True, f"Running packaged version {runtime_version}"

    try:
        with open(pyproject_path, "rb") as f:
            source_version = (
                tomllib.load(f).get("project", {}).get("version", "unknown")
            )
    except (OSError, tomllib.TOMLDecodeError) as e:
        return False, f"Failed to read version from pyproject.toml: {e}"

    if runtime_version != source_version:
        return False, (
            f"Version mismatch detected! "
            f"Runtime: {runtime_version}, Source: {source_version}. "
            f"Reinstall with: pip install -e ."
        )

    return True, f"Version verified: {runtime_version}"
