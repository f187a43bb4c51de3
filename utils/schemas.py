"""
Pydantic Schemas - Data Validation Models

Defines the schemas shared across the sync pipeline:
- Partition: one upstream store
- DispensingRecord: one normalized dispensing event
- SyncEvent: Redis Pub/Sub message emitted after each run

Usage:
    from utils.schemas import DispensingRecord

    record = DispensingRecord(**fields)
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Partition(BaseModel):
    """A store known to the upstream system. Enumerated fresh each run."""

    model_config = ConfigDict(frozen=True)

    store_id: str = Field(..., min_length=1, description="Upstream STOREID")
    code: Optional[int] = Field(default=None, description="Secondary numeric code (CODICE)")


class DispensingRecord(BaseModel):
    """One dispensing event, as persisted in the sink table.

    `source_id` is the upstream ID: unique within a store and strictly
    increasing across the pages of one extraction run.
    """

    model_config = ConfigDict(frozen=True)

    store_code: str = Field(..., description="IMPIANTO.codice")
    store_link: str = Field(..., description="IMPIANTO.link")
    store_name: str = Field(..., description="IMPIANTO.nome")
    store_id: str = Field(..., description="IMPIANTO.storeID")
    occurred_at: datetime = Field(..., description="DATETIME in the configured zone")
    accounting_day: datetime = Field(..., description="Start of the day of occurred_at")
    device_type: str = Field(..., description="DEVICETYPE")
    amount: Decimal = Field(..., description="IMPORTOTOT")
    volume: Decimal = Field(..., description="LITRI")
    card_id: str = Field(..., description="LOCALCARD")
    lot_number: int = Field(..., description="LOTTO")
    movement_number: int = Field(..., description="NUMMOV")
    operation_mode: str = Field(..., description="OPMODE")
    payment_mode: str = Field(..., description="PAYMODE")
    nozzle_number: int = Field(..., description="POMPA.npistola")
    pump_number: int = Field(..., description="POMPA.npompa")
    unit_price: Decimal = Field(..., description="PREZZO")
    product_code: str = Field(..., description="PRODOTTO.codice")
    product_name: str = Field(..., description="PRODOTTO.nome")
    card_type: str = Field(..., description="TIPOCARTA")
    price_type: str = Field(..., description="TIPOPREZZO")
    totalizer_electronic: int = Field(..., description="TOTAL_EL")
    totalizer_mechanical: int = Field(..., description="TOTAL_MEC")
    transaction_number: int = Field(..., description="TRANSACTIONNUMBER")
    source_id: int = Field(..., description="Upstream unique ID")


class SyncEvent(BaseModel):
    """Redis Pub/Sub event payload.

    Standard format for run events:
    {
        "type": "sync_completed" | "sync_failed",
        "ts": "2025-01-15T03:15:02Z",
        "summary": {...},
        "error": null
    }
    """

    type: Literal["sync_completed", "sync_failed"] = Field(..., description="Event type")
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp")
    summary: dict[str, Any] = Field(default_factory=dict, description="Run summary")
    error: Optional[str] = Field(default=None, description="Error message for failed runs")
