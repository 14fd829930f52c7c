import json
import logging

import pytest

from ciaociao.core.logging_config import JsonFormatter
from ciaociao.observability.events import emit_circuit_transition, emit_quotes_rejected, emit_sources_exhausted

from conftest import make_quote


def _events(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(record.getMessage()) for record in caplog.records if record.name == 'ciaociao.observability']


def test_circuit_open_transition_is_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger='ciaociao.observability'):
        emit_circuit_transition(source_id='goldapi', prior_state='closed', new_state='open', cooldown_until=160.0)

    assert caplog.records[-1].levelno == logging.WARNING
    assert _events(caplog)[-1] == {
        'event': 'circuit_transition',
        'source_id': 'goldapi',
        'prior_state': 'closed',
        'new_state': 'open',
        'cooldown_until': 160.0,
    }


def test_rejected_quotes_are_listed_by_source(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger='ciaociao.observability'):
        emit_quotes_rejected(key='XAU/USD', reason='outlier', quotes=[make_quote('150', source_id='metalsdev')])

    event = _events(caplog)[-1]
    assert event['reason'] == 'outlier'
    assert event['rejected'] == ['metalsdev=150']


def test_exhaustion_is_logged_as_error(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger='ciaociao.observability'):
        emit_sources_exhausted(key='XAU/MXN', reason='no_live_data')
    assert caplog.records[-1].levelno == logging.ERROR


def test_json_formatter_includes_request_and_source_fields() -> None:
    record = logging.LogRecord('ciaociao.api', logging.INFO, __file__, 1, 'http.request', None, None)
    record.request_id = 'req-1'
    record.source_id = 'banxico'
    payload = json.loads(JsonFormatter().format(record))
    assert payload['request_id'] == 'req-1'
    assert payload['source_id'] == 'banxico'
    assert payload['logger'] == 'ciaociao.api'
