from polymarket_lab.data_storage import (
    load_markets,
    load_price_history,
    load_trades,
    markets_cache_exists,
    save_markets,
)
from conftest import hourly_prices, make_market


def test_round_trip(tmp_path, small_markets):
    data_dir = str(tmp_path / "cache")

    assert not markets_cache_exists(data_dir)
    save_markets(small_markets, data_dir)
    assert markets_cache_exists(data_dir)

    loaded = load_markets(data_dir)

    assert [m.to_dict(include_history=True) for m in loaded] == \
        [m.to_dict(include_history=True) for m in small_markets]


def test_optional_fields_survive(tmp_path):
    market = make_market(market_id="open/one", resolved=None)
    market.category = None
    save_markets([market], str(tmp_path))

    (loaded,) = load_markets(str(tmp_path))

    assert loaded.resolved_outcome is None
    assert loaded.end_date is None
    assert loaded.category is None
    assert loaded.active is True
    assert loaded.trades == []
    # odd characters in ids are made safe for file names
    assert len(list(tmp_path.glob("prices_open_one_*.csv"))) == 1


def test_empty_cache(tmp_path):
    assert load_markets(str(tmp_path)) == []
    assert load_price_history("missing", str(tmp_path)) == []
    assert load_trades("missing", str(tmp_path)) == []


def test_ids_that_sanitise_alike_keep_separate_files(tmp_path):
    dotted     = make_market(market_id="a.b", prices=hourly_prices([0.1, 0.2]))
    underscore = make_market(market_id="a_b", prices=hourly_prices([0.8, 0.9, 0.7]))
    save_markets([dotted, underscore], str(tmp_path))

    loaded = {m.market_id: m for m in load_markets(str(tmp_path))}

    assert [p.price for p in loaded["a.b"].historical_prices] == [0.1, 0.2]
    assert [p.price for p in loaded["a_b"].historical_prices] == [0.8, 0.9, 0.7]
    assert len(list(tmp_path.glob("prices_a_b_*.csv"))) == 2
