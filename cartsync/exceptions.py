"""
Custom exceptions for the cart engine.
"""


class CartException(Exception):
    """Base exception for cart operations"""
    pass


class StockExceededError(CartException):
    """Raised when a mutation would push a line past the stock ceiling"""
    def __init__(self, product_id: str, stock: int):
        self.product_id = product_id
        self.stock = stock
        super().__init__(f"Stock ceiling reached for product {product_id} (stock: {stock})")


class StorageUnavailableError(CartException):
    """Raised when a cart backend cannot be reached"""
    pass


class RemoteUnavailableError(StorageUnavailableError):
    """Raised when the remote cart store fails (network or authorization)"""
    pass


class ProductNotFoundError(CartException):
    """Raised when the catalog cannot resolve a product"""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found in catalog: {product_id}")


class LocalCacheCorruptError(CartException):
    """Raised when the local cart cache holds malformed content"""
    pass


class ValidationError(CartException):
    """Raised when validation fails"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
