"""SQL persistence: statements compiled against PostgreSQL, sessions mocked"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from cryptoloader.core.errors import RepositoryError
from cryptoloader.schemas.crypto import CryptoDataSource
from cryptoloader.services.mapping_repository import SqlMappingRepository, build_mapping_upsert
from cryptoloader.services.symbol_repository import SymbolRepository


def compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestMappingUpsert:
    def test_conflict_target_is_sid_and_source(self):
        sql = compiled(build_mapping_upsert(1, CryptoDataSource.COINGECKO, "bitcoin", api_symbol="BTC"))
        assert "INSERT INTO crypto_api_map" in sql
        assert "ON CONFLICT (sid, api_source) DO UPDATE" in sql
        assert "last_verified" in sql

    def test_binds_source_value(self):
        stmt = build_mapping_upsert(7, CryptoDataSource.COINPAPRIKA, "btc-bitcoin")
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert params["api_source"] == "coinpaprika"
        assert params["api_id"] == "btc-bitcoin"
        assert params["is_active"] is True


class TestSqlMappingRepository:
    @pytest.fixture
    def db(self):
        return MagicMock()

    def test_upsert_commits(self, db):
        SqlMappingRepository(db).upsert_api_mapping(1, CryptoDataSource.COINGECKO, "bitcoin")
        db.execute.assert_called_once()
        db.commit.assert_called_once()

    def test_upsert_failure_wrapped_and_rolled_back(self, db):
        db.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        with pytest.raises(RepositoryError):
            SqlMappingRepository(db).upsert_api_mapping(1, CryptoDataSource.COINGECKO, "bitcoin")
        db.rollback.assert_called_once()

    def test_lookup_failure_wrapped(self, db):
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        with pytest.raises(RepositoryError):
            SqlMappingRepository(db).get_api_id(1, CryptoDataSource.COINGECKO)

    def test_symbols_needing_mapping_uses_anti_join(self, db):
        db.execute.return_value.all.return_value = [SimpleNamespace(sid=1, symbol="BTC", name="Bitcoin")]

        refs = SqlMappingRepository(db).get_symbols_needing_mapping(CryptoDataSource.COINGECKO)

        assert refs[0].sid == 1 and refs[0].symbol == "BTC"
        sql = compiled(db.execute.call_args.args[0])
        assert "LEFT OUTER JOIN crypto_api_map" in sql
        assert "crypto_api_map.sid IS NULL" in sql

    def test_find_symbol_id_normalizes_ticker(self, db):
        db.execute.return_value.scalar_one_or_none.return_value = 42
        assert SqlMappingRepository(db).find_symbol_id(" btc ") == 42
        params = db.execute.call_args.args[0].compile(dialect=postgresql.dialect()).params
        assert "BTC" in params.values()

    def test_mapping_stats(self, db):
        db.execute.side_effect = [
            MagicMock(scalar_one=MagicMock(return_value=10)),
            MagicMock(all=MagicMock(return_value=[("coingecko", 7)])),
        ]
        stats = SqlMappingRepository(db).get_mapping_stats()
        assert stats["total_symbols"] == 10
        assert stats["mapped"]["coingecko"] == 7
        assert stats["unmapped"]["coingecko"] == 3
        assert stats["unmapped"]["coinpaprika"] == 10


class TestSymbolRepository:
    def test_symbol_upsert_sql(self, make_symbol):
        repo = SymbolRepository(MagicMock())
        db = repo.db
        db.execute.return_value = [SimpleNamespace(sid=1, symbol="BTC")]

        sids = repo._upsert_chunk([make_symbol("BTC", market_cap_rank=1)])

        assert sids == {"BTC": 1}
        sql = compiled(db.execute.call_args.args[0])
        assert "ON CONFLICT (symbol) DO UPDATE" in sql
        assert "RETURNING symbols.sid, symbols.symbol" in sql

    def test_chunks_and_records_mappings(self, make_symbol, monkeypatch):
        db = MagicMock()
        repo = SymbolRepository(db, chunk_size=2)
        chunks = []

        def fake_chunk(chunk):
            chunks.append([s.symbol for s in chunk])
            return {s.symbol: index for index, s in enumerate(chunk, start=len(chunks) * 10)}

        monkeypatch.setattr(repo, "_upsert_chunk", fake_chunk)
        symbols = [make_symbol(t) for t in ("BTC", "ETH", "SOL")]

        assert repo.upsert_symbols(symbols) == 3
        assert chunks == [["BTC", "ETH"], ["SOL"]]
        # one crypto_api_map upsert per symbol
        assert db.execute.call_count == 3
        assert "crypto_api_map" in compiled(db.execute.call_args_list[0].args[0])

    def test_duplicate_tickers_collapsed(self, make_symbol, monkeypatch):
        repo = SymbolRepository(MagicMock())
        seen = []
        monkeypatch.setattr(repo, "_upsert_chunk", lambda chunk: seen.extend(chunk) or {})

        repo.upsert_symbols([make_symbol("BTC", source_id="a"), make_symbol("BTC", source_id="b")])

        assert [s.source_id for s in seen] == ["b"]

    def test_empty(self):
        db = MagicMock()
        assert SymbolRepository(db).upsert_symbols([]) == 0
        db.execute.assert_not_called()
