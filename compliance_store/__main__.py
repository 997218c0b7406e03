from __future__ import annotations

import sys

from compliance_store.bootstrap.exception_handler import handle_global_exception
from compliance_store.entrypoints.cli import main

try:
    raise SystemExit(main())
except SystemExit:
    raise
except Exception:  # noqa: BLE001
    exc_type, exc_value, exc_traceback = sys.exc_info()
    if exc_type is None or exc_value is None:
        raise SystemExit(1)
    incident_id = handle_global_exception(exc_type, exc_value, exc_traceback)
    sys.stderr.write(f"Unexpected error. Incident id: {incident_id}\n")
    raise SystemExit(1)
