"""
Pydantic models for carts, session identity, snapshots, requests and responses.
"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, List
from decimal import Decimal


class Product(BaseModel):
    """Catalog product (read-only reference data)"""
    id: str = Field(..., description="Product identifier")
    name: str = Field("", description="Display name")
    description: str = Field("", description="Display description")
    price: Decimal = Field(..., ge=0, description="Current unit price")
    image: str = Field("", description="Image URL")
    category: str = Field("", description="Category label")
    rating: float = Field(0, description="Average rating")
    stock: int = Field(..., ge=0, description="Available inventory")


class CartLine(BaseModel):
    """A single product/quantity pair within a cart"""
    product_id: str = Field(..., description="Product identifier")
    quantity: int = Field(..., ge=1, description="Line quantity")
    remote_row_id: Optional[int] = Field(None, description="cart_item row id when backed by the remote store")
    product: Optional[Product] = Field(None, description="Product snapshot used for display and totals")


class Cart(BaseModel):
    """Cart contents keyed by product id, one line per product"""
    lines: Dict[str, CartLine] = Field(default_factory=dict)

    @classmethod
    def from_lines(cls, lines: List[CartLine]) -> "Cart":
        return cls(lines={line.product_id: line for line in lines})

    def is_empty(self) -> bool:
        return not self.lines

    def quantity_of(self, product_id: str) -> int:
        line = self.lines.get(product_id)
        return line.quantity if line else 0

    def put(self, line: CartLine) -> None:
        self.lines[line.product_id] = line

    def discard(self, product_id: str) -> Optional[CartLine]:
        return self.lines.pop(product_id, None)

    def total(self) -> Decimal:
        """Sum of quantity x price over lines with a known product"""
        total = Decimal("0")
        for line in self.lines.values():
            if line.product is not None:
                total += line.product.price * line.quantity
        return total

    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines.values())


class SessionIdentity(BaseModel):
    """Current session: anonymous (no user_id) or authenticated"""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "SessionIdentity":
        return cls()

    @classmethod
    def authenticated(cls, user_id: str) -> "SessionIdentity":
        if not user_id:
            raise ValueError("Authenticated identity requires a user id")
        return cls(user_id=user_id)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class ReconciliationState(str, Enum):
    """One-shot merge flag for a single sign-in"""
    PENDING = "pending"
    DONE = "done"


class MergeOutcome(str, Enum):
    """What reconciliation did with the local cart"""
    REMOTE_WINS = "remote_wins"
    IMPORTED = "imported"
    NOTHING_TO_MERGE = "nothing_to_merge"


class LocalCartEntry(BaseModel):
    """Serialized form of one local cache line"""
    product_id: str
    quantity: int = Field(..., ge=1)
    product: Optional[Product] = None


class SnapshotLine(BaseModel):
    """Render-ready cart line"""
    product_id: str
    name: str
    image: str
    price: Decimal
    stock: int
    quantity: int
    subtotal: Decimal


class CartSnapshot(BaseModel):
    """Read model exposed to the UI layer"""
    lines: List[SnapshotLine] = Field(default_factory=list)
    total: Decimal = Field(Decimal("0"))
    item_count: int = 0
    user_id: Optional[str] = None


class AddItemRequest(BaseModel):
    """Request model for adding one unit of a product"""
    product_id: str = Field(..., min_length=1, description="Product identifier")


class UpdateQuantityRequest(BaseModel):
    """Request model for setting a line quantity"""
    quantity: int = Field(..., description="Requested quantity; zero or less removes the line")


class SignInRequest(BaseModel):
    """Request model for binding the session to a user"""
    user_id: str = Field(..., min_length=1, description="User identifier")


class CheckoutResponse(BaseModel):
    """Response model for checkout"""
    order_id: str = Field(..., description="Generated order identifier")
    total: Decimal = Field(..., description="Order total")
    items: List[SnapshotLine] = Field(..., description="Ordered lines")
    message: str = Field(..., description="Checkout status message")
