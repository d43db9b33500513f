"""Centralized configuration defaults for vault-agent."""

import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    vault-agent configuration defaults with environment variable overrides.

    These are process-wide *defaults* only. Each VaultClient copies the values
    it needs at construction time, so clients never share mutable state
    through this class.
    """

    # ========================================================================
    # Connection
    # ========================================================================
    VAULT_ADDR: str = os.getenv("VAULT_ADDR", "http://127.0.0.1:8200")
    VAULT_TOKEN: str | None = os.getenv("VAULT_TOKEN") or None
    VAULT_NAMESPACE: str | None = os.getenv("VAULT_NAMESPACE") or None
    SKIP_VERIFY: bool = _env_bool("VAULT_SKIP_VERIFY")
    REQUEST_TIMEOUT: float = float(os.getenv("VAULT_REQUEST_TIMEOUT", "10"))
    SHUTDOWN_TIMEOUT: float = float(os.getenv("VAULT_SHUTDOWN_TIMEOUT", "5"))

    # ========================================================================
    # Response wrapping
    # ========================================================================
    WRAP_TTL: int = int(os.getenv("VAULT_WRAP_TTL", "300"))  # 5 minutes

    # ========================================================================
    # Lease renewal
    # ========================================================================
    # Renew once this fraction of the lease duration has elapsed. Kept well
    # below 1.0 so retries still fit before expiry.
    RENEWAL_THRESHOLD: float = float(os.getenv("VAULT_RENEWAL_THRESHOLD", "0.66"))
    RENEWAL_POLL_INTERVAL: float = float(os.getenv("VAULT_RENEWAL_POLL_INTERVAL", "1"))
    RETRY_INITIAL_BACKOFF: float = float(os.getenv("VAULT_RETRY_INITIAL_BACKOFF", "1"))
    RETRY_MAX_BACKOFF: float = float(os.getenv("VAULT_RETRY_MAX_BACKOFF", "30"))
    RETRY_MULTIPLIER: float = float(os.getenv("VAULT_RETRY_MULTIPLIER", "2"))
    RETRY_MAX_ATTEMPTS: int = int(os.getenv("VAULT_RETRY_MAX_ATTEMPTS", "5"))

    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = os.getenv("VAULT_LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - Address has a scheme
        - Timeouts and TTLs are > 0
        - Renewal threshold is a fraction in (0, 1)
        - Backoff settings are coherent

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if "://" not in cls.VAULT_ADDR and not cls.VAULT_ADDR.startswith("mock:"):
            errors.append(f"VAULT_ADDR must include a scheme, got {cls.VAULT_ADDR!r}")

        if cls.REQUEST_TIMEOUT <= 0:
            errors.append(f"REQUEST_TIMEOUT must be > 0, got {cls.REQUEST_TIMEOUT}")
        if cls.SHUTDOWN_TIMEOUT <= 0:
            errors.append(f"SHUTDOWN_TIMEOUT must be > 0, got {cls.SHUTDOWN_TIMEOUT}")
        if cls.WRAP_TTL <= 0:
            errors.append(f"WRAP_TTL must be > 0, got {cls.WRAP_TTL}")

        if not (0 < cls.RENEWAL_THRESHOLD < 1):
            errors.append(
                f"RENEWAL_THRESHOLD must be between 0 and 1, got {cls.RENEWAL_THRESHOLD}"
            )
        if cls.RENEWAL_POLL_INTERVAL <= 0:
            errors.append(
                f"RENEWAL_POLL_INTERVAL must be > 0, got {cls.RENEWAL_POLL_INTERVAL}"
            )

        if cls.RETRY_INITIAL_BACKOFF <= 0:
            errors.append(
                f"RETRY_INITIAL_BACKOFF must be > 0, got {cls.RETRY_INITIAL_BACKOFF}"
            )
        if cls.RETRY_MAX_BACKOFF < cls.RETRY_INITIAL_BACKOFF:
            errors.append(
                "RETRY_MAX_BACKOFF must be >= RETRY_INITIAL_BACKOFF, "
                f"got {cls.RETRY_MAX_BACKOFF} < {cls.RETRY_INITIAL_BACKOFF}"
            )
        if cls.RETRY_MULTIPLIER < 1:
            errors.append(f"RETRY_MULTIPLIER must be >= 1, got {cls.RETRY_MULTIPLIER}")
        if cls.RETRY_MAX_ATTEMPTS < 1:
            errors.append(
                f"RETRY_MAX_ATTEMPTS must be >= 1, got {cls.RETRY_MAX_ATTEMPTS}"
            )

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
