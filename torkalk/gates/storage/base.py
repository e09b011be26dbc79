from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .records import CustomerRecord, GateRecord


class GateStorage(Protocol):
    """
    Persistence collaborator. Every call may suspend on I/O.

    Failures are reported as None/False (or an exception); retry policy
    belongs to the caller.
    """

    async def load_customers(self, owner_id: str) -> List[CustomerRecord]: ...

    async def load_gate(self, gate_id: str) -> Optional[GateRecord]: ...

    async def save_gate(self, customer_id: str, record: GateRecord) -> Optional[GateRecord]: ...

    async def update_gate(self, gate_id: str, record: GateRecord) -> bool: ...

    async def delete_gate(self, gate_id: str) -> bool: ...


class Notifier(Protocol):
    """Fire-and-forget message to an embedding context (e.g. a parent frame)."""

    def post_message(self, message: Dict[str, Any]) -> None: ...
