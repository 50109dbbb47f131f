"""
Shared pytest fixtures for aggregation pipeline tests.

Everything here runs offline: feeds are replaced by scripted adapters or by
a fake requests session handed to HttpClient.
"""
from datetime import datetime, timezone

import pytest

from intel_pipeline.ingestion.base_adapter import ErrorKind
from intel_pipeline.tests.fakes import FakeSession, ScriptedAdapter, ip_payload, make_config


@pytest.fixture
def fake_session():
    """Returns (session, factory) for HttpClient(session_factory=factory)."""
    def build(*responses):
        session = FakeSession(responses)
        return session, lambda: session
    return build


@pytest.fixture
def five_source_setup():
    """
    Five feeds: three answer with 10, 0 and 5 indicators (1.2.3.4 is
    reported by both 'alpha' and 'gamma'), two time out.
    """
    alpha_ips = ["1.2.3.4"] + [f"10.0.0.{i}" for i in range(1, 10)]
    gamma_ips = ["1.2.3.4"] + [f"10.0.1.{i}" for i in range(1, 5)]

    configs = [make_config(name) for name in ("alpha", "beta", "gamma", "delta", "epsilon")]
    adapters = {
        "alpha": ScriptedAdapter(payload=ip_payload(*alpha_ips)),
        "beta": ScriptedAdapter(payload=ip_payload()),
        "gamma": ScriptedAdapter(payload=ip_payload(*gamma_ips)),
        "delta": ScriptedAdapter(failure_kind=ErrorKind.TIMEOUT),
        "epsilon": ScriptedAdapter(failure_kind=ErrorKind.TIMEOUT),
    }
    return configs, adapters


@pytest.fixture
def fixed_time():
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
