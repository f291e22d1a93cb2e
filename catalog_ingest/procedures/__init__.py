"""Server-side routines shipped with the package."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..errors import ConfigurationError

PROCEDURE_DIR = Path(__file__).parent
DEFAULT_PROCEDURE = PROCEDURE_DIR / "create_item.js"


def load_procedure_body(path: Optional[str] = None) -> str:
    """Read a procedure body from ``path`` or the bundled insertion routine."""
    source = Path(path).expanduser() if path else DEFAULT_PROCEDURE
    try:
        return source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Could not read stored procedure {source}: {exc}") from exc
