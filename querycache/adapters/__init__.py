"""
Adapters providing compute functions for common backends.
"""
