"""
Domain: Contract writers (notaries / offices that draft the sale contract).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ContractWriter:
    writer_id: UUID
    name: str
    type: str
    location: Optional[str] = None
