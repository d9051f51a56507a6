"""Error taxonomy raised by the reconciliation engine."""


class ReconciliationError(Exception):
    """Base class for every error the delivery workflow reports to a user."""

    kind = 'error'

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        return {
            'success': False,
            'error': self.kind,
            'field': self.field,
            'message': self.message,
        }


class ValidationError(ReconciliationError):
    """Bad or missing form input. Raised before anything is written."""

    kind = 'validation_error'


class MissingRequiredField(ValidationError):
    kind = 'missing_required_field'


class InvalidAssociation(ValidationError):
    """Lens order or payment is unknown or not in an eligible status."""

    kind = 'invalid_association'


class FolioMismatch(ValidationError):
    kind = 'folio_mismatch'


class StoreFailure(ReconciliationError):
    """Database error while applying a reconciliation; the transaction was rolled back."""

    kind = 'store_failure'
