from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from ciaociao.services.price_engine.schemas import ConsensusQuote, Quote

logger = logging.getLogger('ciaociao.observability')


def _emit(event_name: str, payload: dict[str, Any], *, level: int = logging.INFO) -> None:
    message = {
        'event': event_name,
        **payload,
    }
    logger.log(level, json.dumps(message, sort_keys=True, separators=(',', ':'), default=str))


def emit_circuit_transition(*, source_id: str, prior_state: str, new_state: str, cooldown_until: float | None) -> None:
    _emit(
        'circuit_transition',
        {
            'source_id': source_id,
            'prior_state': prior_state,
            'new_state': new_state,
            'cooldown_until': cooldown_until,
        },
        level=logging.WARNING if new_state == 'open' else logging.INFO,
    )


def emit_provider_failure(*, source_id: str, key: str, error_code: str, message: str) -> None:
    _emit(
        'provider_failure',
        {
            'source_id': source_id,
            'key': key,
            'error_code': error_code,
            'message': message,
        },
        level=logging.WARNING,
    )


def emit_provider_skipped(*, source_id: str, key: str, reason: str) -> None:
    _emit(
        'provider_skipped',
        {
            'source_id': source_id,
            'key': key,
            'reason': reason,
        },
    )


def emit_quorum_reached(*, key: str, quotes_received: int, cancelled: int) -> None:
    _emit(
        'quorum_reached',
        {
            'key': key,
            'quotes_received': quotes_received,
            'cancelled': cancelled,
        },
    )


def emit_quotes_rejected(*, key: str, reason: str, quotes: Sequence['Quote']) -> None:
    _emit(
        'quotes_rejected',
        {
            'key': key,
            'reason': reason,
            'rejected': sorted(f'{quote.source_id}={quote.value}' for quote in quotes),
        },
        level=logging.WARNING,
    )


def emit_price_resolved(*, key: str, quote: 'ConsensusQuote') -> None:
    _emit(
        'price_resolved',
        {
            'key': key,
            'method': quote.method.value,
            'value': str(quote.value),
            'confidence': quote.confidence,
            'sources': list(quote.sources),
        },
    )


def emit_fallback_used(*, key: str, reason: str, history_points: int) -> None:
    _emit(
        'fallback_used',
        {
            'key': key,
            'reason': reason,
            'history_points': history_points,
        },
        level=logging.WARNING,
    )


def emit_sources_exhausted(*, key: str, reason: str) -> None:
    _emit(
        'sources_exhausted',
        {
            'key': key,
            'reason': reason,
        },
        level=logging.ERROR,
    )
