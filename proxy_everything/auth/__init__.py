from .gate import AuthOutcome, authorize, check_auth, expected_authorization

__all__ = ["AuthOutcome", "authorize", "check_auth", "expected_authorization"]
