import hashlib
from typing import Optional


def credential_fingerprint(value: Optional[str]) -> str:
    """Provide a stable, low-leak identifier for an Authorization value in logs."""
    if not value:
        return "<empty>"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
    scheme = value.split(" ", 1)[0] if " " in value else "<none>"
    return f"scheme={scheme} len={len(value)} sha256={digest}"
