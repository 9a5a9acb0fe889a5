"""
Order State Machine for validating order status transitions and maintaining consistency.

This module implements a finite state machine to ensure valid order status transitions
and provide audit logging for all status changes made from a storefront.
"""

import logging
from typing import Dict, List, Optional, Set

from enums.order_status import OrderStatus

logger = logging.getLogger(__name__)


class OrderStatusTransition:
    """Represents a valid status transition with metadata"""

    def __init__(self, from_status: str, to_status: str, requires_vendor: bool = True,
                 description: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        self.requires_vendor = requires_vendor
        self.description = description

    def __repr__(self):
        vendor_flag = " (Vendor)" if self.requires_vendor else ""
        return f"{self.from_status} -> {self.to_status}{vendor_flag}"


class OrderStateMachine:
    """
    Finite state machine for order status transitions with validation and audit logging.

    Valid status transitions:
    - PENDING -> CONFIRMED | PREPARING (vendor accepts)
    - PENDING -> CANCELLED (customer or vendor)
    - CONFIRMED -> PREPARING | CANCELLED
    - PREPARING -> READY (pickup) | FOR_DELIVERY (delivery) | CANCELLED
    - READY -> COMPLETED (picked up)
    - FOR_DELIVERY -> DELIVERED
    - DELIVERED -> COMPLETED

    COMPLETED and CANCELLED are final.
    """

    VALID_TRANSITIONS: List[OrderStatusTransition] = [
        # From PENDING
        OrderStatusTransition(
            OrderStatus.PENDING.value,
            OrderStatus.CONFIRMED.value,
            description="Order accepted by the store"
        ),
        OrderStatusTransition(
            OrderStatus.PENDING.value,
            OrderStatus.PREPARING.value,
            description="Order accepted and preparation started"
        ),
        OrderStatusTransition(
            OrderStatus.PENDING.value,
            OrderStatus.CANCELLED.value,
            requires_vendor=False,
            description="Order cancelled before the store accepted it"
        ),

        # From CONFIRMED
        OrderStatusTransition(
            OrderStatus.CONFIRMED.value,
            OrderStatus.PREPARING.value,
            description="Preparation started"
        ),
        OrderStatusTransition(
            OrderStatus.CONFIRMED.value,
            OrderStatus.CANCELLED.value,
            description="Confirmed order cancelled by the store"
        ),

        # From PREPARING
        OrderStatusTransition(
            OrderStatus.PREPARING.value,
            OrderStatus.READY.value,
            description="Ready for pickup"
        ),
        OrderStatusTransition(
            OrderStatus.PREPARING.value,
            OrderStatus.FOR_DELIVERY.value,
            description="Handed to the rider"
        ),
        OrderStatusTransition(
            OrderStatus.PREPARING.value,
            OrderStatus.CANCELLED.value,
            description="Cancelled during preparation"
        ),

        # Fulfilment
        OrderStatusTransition(
            OrderStatus.READY.value,
            OrderStatus.COMPLETED.value,
            description="Picked up by the customer"
        ),
        OrderStatusTransition(
            OrderStatus.FOR_DELIVERY.value,
            OrderStatus.DELIVERED.value,
            description="Delivered to the customer"
        ),
        OrderStatusTransition(
            OrderStatus.DELIVERED.value,
            OrderStatus.COMPLETED.value,
            description="Order closed after delivery"
        ),
    ]

    FINAL_STATUSES = {
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    }

    # Build transition map for fast lookup
    _transition_map: Dict[str, Set[str]] = {}
    _vendor_required_transitions: Set[tuple] = set()
    _transition_descriptions: Dict[tuple, str] = {}

    @classmethod
    def _build_transition_map(cls):
        """Build internal transition maps for performance"""
        if cls._transition_map:
            return

        for transition in cls.VALID_TRANSITIONS:
            cls._transition_map.setdefault(transition.from_status, set()).add(transition.to_status)
            if transition.requires_vendor:
                cls._vendor_required_transitions.add((transition.from_status, transition.to_status))
            cls._transition_descriptions[(transition.from_status, transition.to_status)] = transition.description

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        """
        Check if a status transition is valid according to the state machine.

        Args:
            from_status: Current order status
            to_status: Desired new status

        Returns:
            True if transition is valid, False otherwise
        """
        cls._build_transition_map()

        # Allow staying in same status (no-op)
        if from_status == to_status:
            return True

        return to_status in cls._transition_map.get(from_status, set())

    @classmethod
    def requires_vendor(cls, from_status: str, to_status: str) -> bool:
        cls._build_transition_map()
        return (from_status, to_status) in cls._vendor_required_transitions

    @classmethod
    def get_valid_transitions(cls, from_status: str) -> List[str]:
        cls._build_transition_map()
        return sorted(cls._transition_map.get(from_status, set()))

    @classmethod
    def get_transition_description(cls, from_status: str, to_status: str) -> str:
        cls._build_transition_map()
        return cls._transition_descriptions.get(
            (from_status, to_status),
            f"Transition from {from_status} to {to_status}"
        )

    @classmethod
    def is_final_status(cls, status: str) -> bool:
        return status in cls.FINAL_STATUSES

    @classmethod
    def validate_and_log_transition(cls, order_id: int, from_status: str, to_status: str,
                                    vendor_user_id: Optional[int] = None,
                                    user_id: Optional[int] = None) -> bool:
        """
        Validate a status transition and create audit log entry.

        Args:
            order_id: ID of the order being transitioned
            from_status: Current order status
            to_status: Desired new status
            vendor_user_id: ID of the store owner performing the transition (if applicable)
            user_id: ID of the customer performing the transition (if applicable)

        Returns:
            True if transition is valid and logged, False otherwise
        """
        if not cls.is_valid_transition(from_status, to_status):
            logger.error(f"Invalid status transition for order {order_id}: {from_status} -> {to_status}")
            return False

        if cls.requires_vendor(from_status, to_status) and vendor_user_id is None:
            logger.error(f"Vendor required for transition {from_status} -> {to_status} on order {order_id}")
            return False

        transition_desc = cls.get_transition_description(from_status, to_status)
        performer = f"vendor owner {vendor_user_id}" if vendor_user_id else f"user {user_id}" if user_id else "system"

        logger.info(f"ORDER_STATUS_TRANSITION: Order {order_id} {from_status} -> {to_status} by {performer}: {transition_desc}")
        return True
