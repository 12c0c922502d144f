"""Custom exceptions for the POS application."""


def _fmt_qty(value):
    """Render a quantity without trailing decimals."""
    if value is None:
        return '0'
    return f"{int(value)}" if value % 1 == 0 else f"{value:.2f}".rstrip('0').rstrip('.')


class PosError(Exception):
    """Base exception for all application errors."""
    retryable = False

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        rv['retryable'] = self.retryable
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """Raised when request data is malformed or out of range."""


class EmptyCartError(ValidationError):
    """Raised when a sale is submitted without lines."""
    def __init__(self):
        super().__init__('El carrito está vacío')


class NotAuthenticatedError(PosError):
    """Raised when no user identity could be resolved."""
    def __init__(self, message="Usuario no autenticado"):
        super().__init__(message, 401)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ProductNotFoundError(NotFoundError):
    """Referenced product is missing, inactive or owned by another user."""
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f'Producto no encontrado: {product_id}', payload={'product_id': product_id})


class SaleNotFoundError(NotFoundError):
    """Referenced sale is missing or owned by another user."""
    def __init__(self, sale_id):
        self.sale_id = sale_id
        super().__init__(f'Venta no encontrada: {sale_id}', payload={'sale_id': sale_id})


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_id, available, requested, product_name=None):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.product_name = product_name
        label = product_name or product_id
        message = (
            f"Stock insuficiente para {label}. "
            f"Disponible: {_fmt_qty(available)}, Solicitado: {_fmt_qty(requested)}"
        )
        super().__init__(
            message,
            status_code=409,
            payload={'product_id': product_id, 'available': available, 'requested': requested},
        )


class StockInconsistencyError(BusinessLogicError):
    """A stock update would leave a product below zero (upstream data inconsistency)."""
    def __init__(self, product_id, current, delta):
        self.product_id = product_id
        self.current = current
        self.delta = delta
        super().__init__(
            f'Inconsistencia de stock en producto {product_id}: actual {current}, ajuste {delta}',
            status_code=409,
            payload={'product_id': product_id, 'current': current, 'delta': delta},
        )


class StoreUnavailableError(PosError):
    """Transient persistence failure; the caller may retry."""
    retryable = True

    def __init__(self, message="El almacenamiento no está disponible. Intenta nuevamente."):
        super().__init__(message, 503)


class StockConflictError(StoreUnavailableError):
    """Stock changed concurrently while a sale was being written."""
    def __init__(self, message="El stock fue modificado por otra operación. Intenta nuevamente."):
        super().__init__(message)


class PartialWriteFailureError(PosError):
    """The store lost the connection while committing; outcome unknown, reconcile stock."""
    def __init__(self, message="La operación pudo haberse aplicado parcialmente. Verifica el stock.", payload=None):
        super().__init__(message, 500, payload)
