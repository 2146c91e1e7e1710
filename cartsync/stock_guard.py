"""
Quantity clamping against available stock.
"""


def clamp(requested: int, stock: int) -> int:
    """
    Clamp a requested quantity into [0, stock].

    A result of 0 means the line must be deleted, never stored.
    """
    return max(0, min(requested, stock))
