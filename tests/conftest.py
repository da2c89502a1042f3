import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-entropy-0123456789")
os.environ.setdefault("ADMIN_ACCESS_CODE", "desk-access-code")
os.environ.setdefault("SQLITE_PATH", str(Path(tempfile.gettempdir()) / "eventdesk-tests.db"))
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")
for _name in ("DB_HOST", "DB_USER", "DB_PASSWORD", "DB_NAME"):
    os.environ.pop(_name, None)


@pytest.fixture(autouse=True)
def _reset_schema_marker():
    from eventdesk.repositories import tickets as tickets_repo

    tickets_repo.schema_marker.reset()
    yield
    tickets_repo.schema_marker.reset()
