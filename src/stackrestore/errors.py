"""Domain errors for stackrestore."""


class RestoreError(RuntimeError):
    """Raised when provisioning cannot continue safely."""
