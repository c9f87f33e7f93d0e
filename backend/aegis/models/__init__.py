from __future__ import annotations

from aegis.models.account import Account  # noqa: F401
from aegis.models.auth import RefreshSession  # noqa: F401
from aegis.models.record import MedicalRecord  # noqa: F401
from aegis.models.envelope import FileEnvelope  # noqa: F401
