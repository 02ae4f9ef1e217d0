class MaterialPlanningError(Exception):
    """Base exception for Material Planning reorder errors."""

    default_message = "An error occurred in the Material Planning service"

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(MaterialPlanningError):
    """Exception raised for configuration errors."""
    default_message = "Configuration error"


class DatabaseError(MaterialPlanningError):
    """Exception raised for database-related errors."""
    default_message = "Database error"


class ValidationError(MaterialPlanningError):
    """Exception raised for data validation errors."""
    default_message = "Validation error"


class InvalidQuantity(ValidationError):
    """Raised for negative or malformed quantity input."""
    default_message = "Invalid quantity"


class NotFoundError(MaterialPlanningError):
    """Exception raised when a requested resource is not found."""
    default_message = "Resource not found"


class ReorderError(MaterialPlanningError):
    """Exception raised for reorder processing errors."""
    default_message = "Reorder error"


class NoVendorConfigured(ReorderError):
    """Raised when no vendor can be resolved for a trigger record."""
    default_message = "no vendor configured"


class PurchaseOrderCreationFailed(ReorderError):
    """Raised when the procurement backend could not create a purchase order."""
    default_message = "Purchase order creation failed"


class DuplicateTriggerSkipped(ReorderError):
    """Raised internally when an unresolved trigger already exists for a SKU.

    Callers treat this as a no-op, never as a user-visible failure.
    """
    default_message = "A pending reorder already exists for this SKU"


class SubscriptionError(MaterialPlanningError):
    """Exception raised when the inventory change feed disconnects."""
    default_message = "Inventory change subscription error"


class ReportingError(MaterialPlanningError):
    """Exception raised for statistics and reporting errors."""
    default_message = "Reporting error"


class BatchProcessError(MaterialPlanningError):
    """Exception raised for batch process errors."""
    default_message = "Batch process error"
