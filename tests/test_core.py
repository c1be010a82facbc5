import asyncio
import logging

import pytest

from maintdesk.core.concurrency import gather_in_chunks
from maintdesk.core.config import Settings
from maintdesk.core.logging import init_tracer, logging_config, parse_otlp_headers, tracer_resource


def test_parse_otlp_headers_skips_malformed_items():
    assert parse_otlp_headers("api-key=abc, x-team = ops,broken,=nokey") == {"api-key": "abc", "x-team": "ops"}
    assert parse_otlp_headers(None) == {}


def test_tracer_disabled_by_default():
    assert init_tracer(Settings(otel_enabled=False)) is None


def test_logging_config_keeps_storage_clients_quiet():
    config = logging_config(Settings(log_level="info"))

    assert config["loggers"]["maintdesk"]["level"] == logging.INFO
    assert config["loggers"]["botocore"]["level"] == logging.WARNING
    assert config["loggers"]["httpx"]["level"] == logging.WARNING


def test_logging_config_debug_opens_client_loggers_and_ignores_bad_levels():
    assert logging_config(Settings(log_level="DEBUG"))["loggers"]["boto3"]["level"] == logging.DEBUG
    assert logging_config(Settings(log_level="chatty"))["loggers"]["maintdesk"]["level"] == logging.INFO


def test_tracer_resource_names_service_and_environment():
    resource = tracer_resource(Settings(environment="staging", otel_service_name="desk-api"))

    assert resource.attributes["service.name"] == "desk-api"
    assert resource.attributes["deployment.environment"] == "staging"


@pytest.mark.asyncio
async def test_gather_in_chunks_bounds_concurrency_and_keeps_order():
    running = 0
    peak = 0

    async def worker(item: int) -> int:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0)
        running -= 1
        return item * 10

    results = await gather_in_chunks(list(range(10)), worker, limit=3)

    assert results == [item * 10 for item in range(10)]
    assert peak <= 3


@pytest.mark.asyncio
async def test_gather_in_chunks_rejects_zero_limit():
    async def worker(item: int) -> int:
        return item

    with pytest.raises(ValueError):
        await gather_in_chunks([1], worker, limit=0)
