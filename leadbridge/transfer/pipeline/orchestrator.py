"""
Schema gate run before every lead write.

The orchestrator walks a small state machine over the classifier, existence
checker and provisioner:

    NO_DYNAMIC_FIELDS -> READY_FOR_TRANSFER
    CHECKING_SCHEMA -> ALL_EXIST -> READY_FOR_TRANSFER
    CHECKING_SCHEMA -> SOME_MISSING -> PROVISIONING -> ALL_SUCCEEDED -> READY_FOR_TRANSFER
                                                    -> ANY_FAILED -> BLOCKED_ON_SCHEMA

It keeps no state between calls; each ``prepare`` returns a fresh plan.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from leadbridge.transfer.pipeline.classify import CandidateField, classify_fields
from leadbridge.transfer.pipeline.schema import (
    ProvisioningResult,
    SchemaCheck,
    SchemaInspector,
    SchemaProvisioner,
)

logger = logging.getLogger(__name__)


class SchemaState(str, enum.Enum):
    NO_DYNAMIC_FIELDS = "no_dynamic_fields"
    CHECKING_SCHEMA = "checking_schema"
    ALL_EXIST = "all_exist"
    SOME_MISSING = "some_missing"
    PROVISIONING = "provisioning"
    ALL_SUCCEEDED = "all_succeeded"
    ANY_FAILED = "any_failed"
    READY_FOR_TRANSFER = "ready_for_transfer"
    BLOCKED_ON_SCHEMA = "blocked_on_schema"


TERMINAL_STATES = frozenset({SchemaState.READY_FOR_TRANSFER, SchemaState.BLOCKED_ON_SCHEMA})


@dataclass(frozen=True)
class SettleDelay:
    """Pause after field creation so metadata changes reach the data API."""

    seconds: float = 2.0
    sleep_fn: Callable[[float], None] = time.sleep

    def wait(self) -> None:
        if self.seconds > 0:
            self.sleep_fn(self.seconds)


@dataclass
class SchemaPlan:
    """Outcome of the schema gate for one record."""

    candidates: list[CandidateField] = field(default_factory=list)
    path: list[SchemaState] = field(default_factory=list)
    check: SchemaCheck | None = None
    provisioning: ProvisioningResult | None = None

    @property
    def state(self) -> SchemaState:
        return self.path[-1]

    @property
    def ready(self) -> bool:
        return self.state is SchemaState.READY_FOR_TRANSFER

    @property
    def blocked(self) -> bool:
        return self.state is SchemaState.BLOCKED_ON_SCHEMA

    def errors(self) -> list[str]:
        if self.provisioning is None:
            return []
        return self.provisioning.failure_messages()

    def _advance(self, state: SchemaState) -> None:
        if self.path and self.path[-1] in TERMINAL_STATES:
            raise RuntimeError(f"Schema plan already finished in {self.path[-1].value}")
        self.path.append(state)


class TransferOrchestrator:
    """Sequence classification, existence check and provisioning for one record."""

    def __init__(
        self,
        client,
        *,
        object_type: str = "Lead",
        inspector: SchemaInspector | None = None,
        provisioner: SchemaProvisioner | None = None,
        settle: SettleDelay | None = None,
    ) -> None:
        self.client = client
        self.inspector = inspector or SchemaInspector(client, object_type)
        self.provisioner = provisioner or SchemaProvisioner(client, object_type)
        self.settle = settle or SettleDelay()

    def prepare(
        self,
        record: Mapping[str, Any],
        active_fields: Iterable[str] | None = None,
        custom_labels: Mapping[str, str] | None = None,
    ) -> SchemaPlan:
        plan = SchemaPlan(candidates=classify_fields(record, active_fields, custom_labels=custom_labels))

        if not plan.candidates:
            plan._advance(SchemaState.NO_DYNAMIC_FIELDS)
            plan._advance(SchemaState.READY_FOR_TRANSFER)
            return plan

        plan._advance(SchemaState.CHECKING_SCHEMA)
        plan.check = self.inspector.check_existence(candidate.remote_name for candidate in plan.candidates)
        if not plan.check.missing:
            plan._advance(SchemaState.ALL_EXIST)
            plan._advance(SchemaState.READY_FOR_TRANSFER)
            return plan

        plan._advance(SchemaState.SOME_MISSING)
        plan._advance(SchemaState.PROVISIONING)
        missing = [candidate for candidate in plan.candidates if candidate.remote_name in plan.check.missing]
        plan.provisioning = self.provisioner.provision(missing)

        if plan.provisioning.created:
            self.settle.wait()

        if plan.provisioning.failed:
            plan._advance(SchemaState.ANY_FAILED)
            plan._advance(SchemaState.BLOCKED_ON_SCHEMA)
            logger.warning(
                "Transfer blocked on schema provisioning",
                extra={"failed_fields": [item.remote_name for item in plan.provisioning.failed]},
            )
            return plan

        plan._advance(SchemaState.ALL_SUCCEEDED)
        plan._advance(SchemaState.READY_FOR_TRANSFER)
        logger.info(
            "Schema ready after provisioning",
            extra={
                "created": len(plan.provisioning.created),
                "skipped": len(plan.provisioning.skipped),
            },
        )
        return plan
