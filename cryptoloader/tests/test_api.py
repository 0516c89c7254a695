"""API endpoint tests"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from cryptoloader.api.deps import get_db, get_etl_service
from cryptoloader.core.errors import RateLimitExceeded, SourceUnavailable
from cryptoloader.main import app
from cryptoloader.schemas.crypto import CryptoDataSource


class TestAPI:
    """Test API endpoints"""

    @pytest.fixture
    def db(self):
        db = MagicMock()
        db.execute.return_value.scalar_one_or_none.return_value = None
        return db

    @pytest.fixture
    def etl_service(self):
        return MagicMock()

    @pytest.fixture
    def client(self, db, etl_service):
        """Test client with the database and ETL service swapped out"""
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_etl_service] = lambda: etl_service
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"database": "ok", "last_etl_status": None}

    def test_health_database_down(self, client, db):
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["database"].startswith("down")

    def test_readiness(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_trigger_symbol_etl(self, client, etl_service):
        etl_service.load_symbols = AsyncMock(
            return_value={
                "success": True,
                "records_processed": 2,
                "symbols_loaded": 2,
                "symbols_failed": 1,
                "symbols_skipped": 1,
                "invalid": 0,
                "processing_time_ms": 12,
                "source_results": {"coingecko": {"errors": ["down"]}},
            }
        )

        response = client.post("/etl/symbols", json={"sources": ["coingecko", "coincap"]})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["symbols_failed"] == 1
        etl_service.load_symbols.assert_awaited_once_with([CryptoDataSource.COINGECKO, CryptoDataSource.COINCAP])

    def test_trigger_symbol_etl_without_body(self, client, etl_service):
        etl_service.load_symbols = AsyncMock(return_value={"success": False, "records_processed": 0})
        response = client.post("/etl/symbols")
        assert response.status_code == 200
        assert response.json()["success"] is False
        etl_service.load_symbols.assert_awaited_once_with(None)

    def test_trigger_symbol_etl_unknown_source(self, client):
        response = client.post("/etl/symbols", json={"sources": ["binance"]})
        assert response.status_code == 422

    def test_trigger_symbol_etl_error(self, client, etl_service):
        etl_service.load_symbols = AsyncMock(side_effect=RuntimeError("db gone"))
        response = client.post("/etl/symbols")
        assert response.status_code == 200
        assert response.json()["error"] == "db gone"

    def test_discover_mappings(self, client, etl_service):
        etl_service.discover_mappings = AsyncMock(return_value={"success": True, "source": "coingecko", "discovered": 5})
        response = client.post("/etl/mappings/coingecko/discover")
        assert response.status_code == 200
        assert response.json()["discovered"] == 5

    def test_discover_unsupported_source(self, client, etl_service):
        etl_service.discover_mappings = AsyncMock(side_effect=SourceUnavailable("coincap"))
        response = client.post("/etl/mappings/coincap/discover")
        assert response.status_code == 400

    def test_discover_upstream_failure(self, client, etl_service):
        etl_service.discover_mappings = AsyncMock(side_effect=RateLimitExceeded("CoinGecko"))
        response = client.post("/etl/mappings/coingecko/discover")
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_initialize_mappings(self, client, etl_service):
        etl_service.initialize_mappings = AsyncMock(
            return_value={"success": True, "source": "coingecko", "requested": 2, "initialized": 1}
        )
        response = client.post("/etl/mappings/initialize", json={"symbols": ["BTC", "XYZ"]})
        assert response.status_code == 200
        assert response.json()["initialized"] == 1
        etl_service.initialize_mappings.assert_awaited_once_with(["BTC", "XYZ"], CryptoDataSource.COINGECKO)

    def test_initialize_requires_symbols(self, client):
        response = client.post("/etl/mappings/initialize", json={"symbols": []})
        assert response.status_code == 422

    def test_get_stats(self, client, db):
        db.execute.return_value.scalars.return_value.all.return_value = []
        response = client.get("/stats")
        assert response.status_code == 200
        assert response.json() == []

    def test_symbols_summary(self, client, db):
        db.execute.side_effect = [
            MagicMock(scalar=MagicMock(return_value=5)),
            MagicMock(scalar=MagicMock(return_value=4)),
            MagicMock(all=MagicMock(return_value=[("coingecko", 3), ("coincap", 2)])),
        ]
        response = client.get("/stats/symbols")
        assert response.status_code == 200
        assert response.json() == {
            "total": 5,
            "active": 4,
            "by_primary_source": {"coingecko": 3, "coincap": 2},
        }

    def test_mapping_stats(self, client, etl_service):
        etl_service.mapping_stats.return_value = {
            "total_symbols": 3,
            "mapped": {"coingecko": 2},
            "unmapped": {"coingecko": 1},
        }
        response = client.get("/stats/mappings")
        assert response.status_code == 200
        assert response.json()["unmapped"]["coingecko"] == 1

    def test_invalid_endpoint(self, client):
        response = client.get("/invalid")
        assert response.status_code == 404
