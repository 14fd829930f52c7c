from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from ciaociao.providers.execution_types import CircuitState
from ciaociao.services.price_engine.schemas import Currency, Metal, ResolutionMethod, Unit


class ConsensusQuoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset: Metal | Currency
    currency: Currency
    unit: Unit | None
    value: Decimal
    observed_at: datetime
    source_id: str
    confidence: float
    contributing_sources: int
    method: ResolutionMethod
    sources: list[str] = []
    stale: bool = False


class ProviderStateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    source_id: str
    enabled: bool
    circuit_state: CircuitState
    consecutive_failures: int
    last_failure_at: float | None
    cooldown_until: float | None
    quota_window_start: float | None
    requests_in_window: int
    quota_limit: int
