"""
Centralized Enum definitions for the project.
"""

from enum import Enum


class AgentType(str, Enum):
    """Types of agents in the restocking system"""

    INVENTORY = "inventory"
    PROCUREMENT = "procurement"
    TEST_AGENT = "test_agent"


class WorkflowState(str, Enum):
    """States of a single restock workflow run"""

    IDLE = "idle"
    DECIDING = "deciding"
    REQUESTING_ORDER = "requesting_order"
    AWAITING_PAYMENT = "awaiting_payment"
    EXECUTING_SETTLEMENT = "executing_settlement"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SUBMITTING_PROOF = "submitting_proof"
    COMPLETED = "completed"  # Terminal success
    FAILED = "failed"  # Terminal unless the failure is settlement-related
    FALLBACK_DISCOVERY = "fallback_discovery"
    NO_SUPPLIERS = "no_suppliers"  # Terminal, fallback found nobody

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowState.IDLE,
            WorkflowState.COMPLETED,
            WorkflowState.FAILED,
            WorkflowState.NO_SUPPLIERS,
        )


class TriggerSource(str, Enum):
    """What caused a workflow run to start"""

    LOW_STOCK = "low_stock"
    MANUAL = "manual"


class Currency(str, Enum):
    """Settlement currencies a supplier may invoice in"""

    ETH = "ETH"
    USDC = "USDC"


class OrderStatus(str, Enum):
    """Status recorded on a supplier ledger order"""

    PAID = "paid"
    DEFERRED = "deferred"  # Direct purchase order, payment on terms


class InventoryEventType(str, Enum):
    """Types of inventory events"""

    SOLD = "SOLD"
    RECEIVED = "RECEIVED"
