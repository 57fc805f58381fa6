# leadbridge/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .field_config import LeadFieldConfig
from .transfer import LeadTransferStatus, TransferStatus

__all__ = [
    "db",
    "BaseModel",
    "LeadFieldConfig",
    "LeadTransferStatus",
    "TransferStatus",
]
