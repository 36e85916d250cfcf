"""End-to-end tests for the command-line entry point."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from banksync import cli
from banksync.sync.clients.http import HTTPTransport
from banksync.sync.clients.invoice_ninja import InvoiceNinjaClient
from banksync.sync.clients.mercury import MercuryClient
from banksync.sync.config import RetryConfig
from banksync.sync.ledger import Ledger, LedgerStore

FAST_RETRY = RetryConfig(max_attempts=2, initial_delay=0.001, jitter=False)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("MERCURY_API_KEY", "INVOICE_NINJA_TOKEN", "INVOICE_NINJA_URL", "DATA_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    # Keep global logging config untouched across tests
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "mercuryAPIKey": "mercury-token",
                "invoiceNinjaToken": "ninja-token",
                "invoiceNinjaURL": "https://ninja.example.com",
                "logLevel": "error",
            }
        )
    )
    return path


class FakeAPIs:
    """Serves both APIs from memory and records posted bank transactions."""

    def __init__(self, provider="Mercury"):
        self.provider = provider
        self.posted = []
        posted_at = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        self.transactions = [
            {"id": "tx_1", "amount": 125.5, "bankDescription": "Client A", "postedAt": posted_at},
            {"id": "tx_2", "amount": -40.0, "bankDescription": "AWS", "postedAt": posted_at},
        ]

    def mercury(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v1/accounts":
            return httpx.Response(200, json={"accounts": [{"id": "acc_1", "name": "Checking"}]})
        return httpx.Response(200, json={"transactions": self.transactions})

    def invoice_ninja(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(
                200, json={"data": [{"id": "bi_1", "provider_name": self.provider}]}
            )
        self.posted.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"id": f"bt_{len(self.posted)}"}})


@pytest.fixture
def fake_apis(monkeypatch):
    apis = FakeAPIs()

    def mercury_create(api_key, base_url, timeout, retry):
        return MercuryClient(
            HTTPTransport(base_url, retry=FAST_RETRY, transport=httpx.MockTransport(apis.mercury))
        )

    def ninja_create(token, url, timeout, retry):
        return InvoiceNinjaClient(
            HTTPTransport(
                url + "/api/v1", retry=FAST_RETRY, transport=httpx.MockTransport(apis.invoice_ninja)
            )
        )

    monkeypatch.setattr(cli.MercuryClient, "create", staticmethod(mercury_create))
    monkeypatch.setattr(cli.InvoiceNinjaClient, "create", staticmethod(ninja_create))
    return apis


class TestCli:
    """Tests for banksync.cli.main."""

    def test_missing_config_exits_with_error(self, tmp_path, capsys):
        assert cli.main(["-c", str(tmp_path / "missing.json"), "once"]) == 1
        assert "Error loading configuration" in capsys.readouterr().err

    def test_ledger_command(self, config_file, tmp_path, capsys):
        data_dir = tmp_path / "data"
        LedgerStore(data_dir / "sync_state.json").persist(
            Ledger({"tx_1": datetime(2026, 10, 18, tzinfo=timezone.utc)})
        )

        assert cli.main(["-c", str(config_file), "-d", str(data_dir), "ledger"]) == 0

        out = capsys.readouterr().out
        assert "Entries: 1" in out
        assert "2026-10-18" in out

    def test_ledger_command_with_corrupt_file(self, config_file, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / "sync_state.json").write_text("garbage")

        assert cli.main(["-c", str(config_file), "-d", str(data_dir), "ledger"]) == 1

    def test_once_syncs_and_persists(self, config_file, tmp_path, fake_apis, capsys):
        data_dir = tmp_path / "data"

        assert cli.main(["-c", str(config_file), "-d", str(data_dir), "once"]) == 0

        assert [p["base_type"] for p in fake_apis.posted] == ["CREDIT", "DEBIT"]
        assert [p["amount"] for p in fake_apis.posted] == [125.5, 40.0]
        assert all(p["bank_integration_id"] == "bi_1" for p in fake_apis.posted)
        assert set(LedgerStore(data_dir / "sync_state.json").load()) == {"tx_1", "tx_2"}
        assert "Posted: 2" in capsys.readouterr().out

        # A second run finds everything in the ledger
        assert cli.main(["-c", str(config_file), "-d", str(data_dir), "once"]) == 0
        assert len(fake_apis.posted) == 2

    def test_once_with_unknown_provider_fails_startup(self, config_file, tmp_path, fake_apis):
        fake_apis.provider = "Some Other Bank"

        assert cli.main(["-c", str(config_file), "-d", str(tmp_path / "data"), "once"]) == 1
        assert fake_apis.posted == []

    def test_unreadable_data_dir_fails_startup(self, config_file, tmp_path, fake_apis):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        assert cli.main(["-c", str(config_file), "-d", str(blocker / "data"), "once"]) == 1
        assert fake_apis.posted == []
