"""Errors raised by the inventory ledger."""


class InventoryError(Exception):
    """Base class for inventory ledger errors."""


class StockItemNotFound(InventoryError):
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__(f"Media item {item_id} not found")


class InsufficientStock(InventoryError):
    """Raised when a quantity cannot be made up exactly from the bundles on hand.

    Nothing is persisted when this is raised; the whole transaction rolls back.
    """

    def __init__(self, item_id, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        if available < requested:
            detail = f"only {available} on hand"
        else:
            detail = f"{available} on hand in bundles that cannot be split exactly"
        super().__init__(
            f"Insufficient stock to fulfill order of {requested} tracts for media {item_id} ({detail})"
        )


class TrackingDisabled(InventoryError):
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__("Inventory tracking is not enabled for this media item")


class NotInitialized(InventoryError):
    """Tracking is on but the bundle map was never seeded."""

    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__("Inventory stock not initialized for this media item")


class InvalidQuantity(InventoryError, ValueError):
    pass
