"""Request signing for the marketplace API.
Bounded Context: Authentication
"""
