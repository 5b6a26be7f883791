class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class TransientFailure(AppError):
    """Server or network failure unrelated to the input; safe to retry."""
