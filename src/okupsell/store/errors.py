from __future__ import annotations


class CommerceError(RuntimeError):
    """Raised by commerce service implementations for any service-side failure."""


class StoreError(RuntimeError):
    user_message = "Something went wrong."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class CatalogLoadFailed(StoreError):
    user_message = "Unable to load products. Please check your connection."


class VerificationFailed(StoreError):
    user_message = "Transaction verification failed."


class PurchaseFailed(StoreError):
    user_message = "The purchase could not be completed."


class RestoreFailed(StoreError):
    user_message = "Unable to restore purchases."
