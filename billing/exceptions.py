"""Custom exceptions for billing services."""

from __future__ import annotations


class BillingServiceError(Exception):
    """Base exception for billing service errors."""

    pass


class TariffNotFoundError(BillingServiceError):
    """Raised when a tariff does not exist or has been soft-deleted."""

    def __init__(self, tariff_id):
        self.tariff_id = tariff_id
        super().__init__(f"Tariff not found: {tariff_id}")


class InvalidVolumeError(BillingServiceError):
    """Raised when a consumption volume is negative or not a number."""

    def __init__(self, volume):
        self.volume = volume
        super().__init__(f"Invalid volume: {volume!r}. Volume must be a number >= 0")


class DuplicateAppliedDiscountError(BillingServiceError):
    """Raised when a payment already carries a discount from the same source."""

    def __init__(self, payment_id: str | None, source_type: str, source_id: int):
        self.payment_id = payment_id
        self.source_type = source_type
        self.source_id = source_id
        super().__init__(
            f"Discount {source_type} #{source_id} already recorded for payment {payment_id}"
        )


class NoTariffAssignedError(BillingServiceError):
    """Raised when a property has no tariff in effect on the requested date."""

    def __init__(self, property_name: str, on_date):
        self.property_name = property_name
        self.on_date = on_date
        super().__init__(f"No tariff assigned to {property_name} on {on_date}")
