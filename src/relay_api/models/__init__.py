"""API-specific request/response models.

Modules:
- common: validation error formatting
- checkout: checkout, billing portal and read-back bodies
"""

__all__: list[str] = []
