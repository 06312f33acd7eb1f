# finance_api/core/errors.py


class UsageLimitExceeded(Exception):
    """Daily OCR budget is spent; the document is not processed."""

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__("Daily OCR limit reached")


class DocumentUnreadableError(Exception):
    """No OCR provider could turn the upload into text."""


class ProviderNotConfigured(Exception):
    pass


class RatesUnavailable(Exception):
    """Neither a live provider, a stored snapshot nor the env fallback has rates."""
