# cartmerge/domain/errors.py


class CartError(Exception):
    """Base class for cart subsystem errors."""


class InvalidCustomerError(CartError, ValueError):
    """Customer identifier missing or unusable, rejected before any store access."""


class CartNotFoundError(CartError):
    pass


class DuplicateCartError(CartError):
    """Conditional insert lost: a cart for this session/customer already exists."""


class CartConcurrencyError(CartError):
    """Optimistic version check failed, the cart was changed by another writer."""


class CartPersistenceError(CartError):
    """Store write failed. Nothing after the failed step was attempted, safe to retry."""


class InvalidCartStateError(CartError):
    """Cart violates the single-ownership invariant (guest xor customer)."""
