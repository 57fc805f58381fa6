"""
Transfer pipeline building blocks.
"""

from .classify import CandidateField, DynamicFieldName, DynamicFieldPrefix, classify_fields, match_dynamic_field
from .field_config import FieldConfig, FieldConfigService, InvalidFieldAlias
from .ledger import LedgerEntry, TransferLedger
from .orchestrator import SchemaPlan, SchemaState, SettleDelay, TransferOrchestrator
from .payload import build_lead_payload
from .picklist import PicklistCache, PicklistValidator, PicklistValues
from .reconcile import ReconciledStatus, ReconciledStatusCode, TransferReconciler
from .schema import ProvisioningResult, SchemaCheck, SchemaInspector, SchemaProvisioner
from .service import DuplicateLeadError, LeadTransferError, LeadTransferService, TransferOutcome

__all__ = [
    "CandidateField",
    "DynamicFieldName",
    "DynamicFieldPrefix",
    "classify_fields",
    "match_dynamic_field",
    "FieldConfig",
    "FieldConfigService",
    "InvalidFieldAlias",
    "LedgerEntry",
    "TransferLedger",
    "SchemaPlan",
    "SchemaState",
    "SettleDelay",
    "TransferOrchestrator",
    "build_lead_payload",
    "PicklistCache",
    "PicklistValidator",
    "PicklistValues",
    "ReconciledStatus",
    "ReconciledStatusCode",
    "TransferReconciler",
    "ProvisioningResult",
    "SchemaCheck",
    "SchemaInspector",
    "SchemaProvisioner",
    "DuplicateLeadError",
    "LeadTransferError",
    "LeadTransferService",
    "TransferOutcome",
]
