"""Customers and their saved AI-context presets.

Records are ordered by ``sort_order``. New records append after the last
one and reordering rewrites the order as multiples of 10, leaving gaps so a
single record can later be slotted in without renumbering the rest.

Writes are last-write-wins per field; there is no versioning.
"""

import threading
import uuid
from dataclasses import dataclass, replace

from ad_report_summarizer.services.summary_generator import AiContext
from ad_report_summarizer.utils.exceptions import RecordNotFoundError, ValidationError
from ad_report_summarizer.utils.logging import get_logger

logger = get_logger(__name__)

SORT_STEP = 10


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    sort_order: int


@dataclass(frozen=True)
class Preset:
    id: str
    customer_id: str
    name: str
    goal: str = ""
    issues: str = ""
    tasks: str = ""
    sort_order: int = 0

    def to_context(self) -> AiContext:
        return AiContext(goal=self.goal, issues=self.issues, tasks=self.tasks)


class PresetStore:
    """In-memory customer and preset store."""

    def __init__(self) -> None:
        self._customers: dict[str, Customer] = {}
        self._presets: dict[str, Preset] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Customers
    # ------------------------------------------------------------------ #

    def list_customers(self) -> list[Customer]:
        with self._lock:
            return sorted(self._customers.values(), key=lambda c: c.sort_order)

    def get_customer(self, customer_id: str) -> Customer:
        with self._lock:
            customer = self._customers.get(customer_id)
        if customer is None:
            raise RecordNotFoundError("Customer", customer_id)
        return customer

    def create_customer(self, name: str) -> Customer:
        name = _require_name(name)
        with self._lock:
            customer = Customer(
                id=str(uuid.uuid4()),
                name=name,
                sort_order=_next_order(c.sort_order for c in self._customers.values()),
            )
            self._customers[customer.id] = customer
        logger.info("Customer created", customer_id=customer.id)
        return customer

    def rename_customer(self, customer_id: str, name: str) -> Customer:
        name = _require_name(name)
        with self._lock:
            customer = replace(self.get_customer(customer_id), name=name)
            self._customers[customer_id] = customer
        return customer

    def delete_customer(self, customer_id: str) -> None:
        """Delete a customer together with its presets."""
        with self._lock:
            self.get_customer(customer_id)
            del self._customers[customer_id]
            owned = [p.id for p in self._presets.values() if p.customer_id == customer_id]
            for preset_id in owned:
                del self._presets[preset_id]
        logger.info("Customer deleted", customer_id=customer_id, presets=len(owned))

    def reorder_customers(self, ordered_ids: list[str]) -> list[Customer]:
        with self._lock:
            _check_permutation(ordered_ids, self._customers.keys(), "Customer")
            for index, customer_id in enumerate(ordered_ids):
                self._customers[customer_id] = replace(
                    self._customers[customer_id], sort_order=index * SORT_STEP
                )
            return self.list_customers()

    # ------------------------------------------------------------------ #
    # Presets
    # ------------------------------------------------------------------ #

    def list_presets(self, customer_id: str) -> list[Preset]:
        with self._lock:
            self.get_customer(customer_id)
            owned = [p for p in self._presets.values() if p.customer_id == customer_id]
        return sorted(owned, key=lambda p: p.sort_order)

    def get_preset(self, preset_id: str) -> Preset:
        with self._lock:
            preset = self._presets.get(preset_id)
        if preset is None:
            raise RecordNotFoundError("Preset", preset_id)
        return preset

    def create_preset(
        self,
        customer_id: str,
        name: str,
        goal: str = "",
        issues: str = "",
        tasks: str = "",
    ) -> Preset:
        name = _require_name(name)
        with self._lock:
            siblings = self.list_presets(customer_id)
            preset = Preset(
                id=str(uuid.uuid4()),
                customer_id=customer_id,
                name=name,
                goal=goal,
                issues=issues,
                tasks=tasks,
                sort_order=_next_order(p.sort_order for p in siblings),
            )
            self._presets[preset.id] = preset
        logger.info("Preset created", preset_id=preset.id, customer_id=customer_id)
        return preset

    def update_preset(
        self,
        preset_id: str,
        name: str | None = None,
        goal: str | None = None,
        issues: str | None = None,
        tasks: str | None = None,
    ) -> Preset:
        """Overwrite the given fields; omitted fields keep their value."""
        changes: dict[str, str] = {}
        if name is not None:
            changes["name"] = _require_name(name)
        if goal is not None:
            changes["goal"] = goal
        if issues is not None:
            changes["issues"] = issues
        if tasks is not None:
            changes["tasks"] = tasks

        with self._lock:
            preset = replace(self.get_preset(preset_id), **changes)
            self._presets[preset_id] = preset
        return preset

    def delete_preset(self, preset_id: str) -> None:
        with self._lock:
            self.get_preset(preset_id)
            del self._presets[preset_id]

    def reorder_presets(self, customer_id: str, ordered_ids: list[str]) -> list[Preset]:
        with self._lock:
            current = {p.id for p in self.list_presets(customer_id)}
            _check_permutation(ordered_ids, current, "Preset")
            for index, preset_id in enumerate(ordered_ids):
                self._presets[preset_id] = replace(
                    self._presets[preset_id], sort_order=index * SORT_STEP
                )
            return self.list_presets(customer_id)


def _require_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValidationError("Name must not be empty", field="name")
    return name


def _next_order(orders) -> int:
    return max(orders, default=-SORT_STEP) + SORT_STEP


def _check_permutation(ordered_ids: list[str], existing, kind: str) -> None:
    if len(ordered_ids) != len(set(ordered_ids)):
        raise ValidationError("Order contains duplicate ids", field="ids")
    for record_id in ordered_ids:
        if record_id not in existing:
            raise RecordNotFoundError(kind, record_id)
    if len(ordered_ids) != len(existing):
        raise ValidationError(
            "Order must list every record exactly once",
            field="ids",
            details={"expected": len(existing), "received": len(ordered_ids)},
        )
