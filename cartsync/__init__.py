"""
Shopping-cart persistence and reconciliation engine.
"""
