import pytest

from symbols import base_symbol, build_universe, normalize_symbol, split_tickers


def test_foreign_listing_maps_to_primary_and_keeps_display():
    assert normalize_symbol("NVD.F") == ("NVDA", "NVD.F")
    assert normalize_symbol("nvd.f") == ("NVDA", "nvd.f")


def test_unknown_symbol_passes_through_unchanged():
    assert normalize_symbol("shop") == ("shop", "shop")


@pytest.mark.parametrize("raw", ["NVD.F", "AAPL", "BRK-B", "KER.PA"])
def test_normalization_is_idempotent_on_canonical_form(raw):
    canonical, _ = normalize_symbol(raw)
    assert normalize_symbol(canonical) == (canonical, canonical)


@pytest.mark.parametrize("symbol,base", [("TRMD-A.CO", "TRMD"), ("KER.PA", "KER"), ("BRK-B", "BRK"), ("AMD", "AMD")])
def test_base_symbol(symbol, base):
    assert base_symbol(symbol) == base


def test_split_tickers_trims_uppercases_and_skips_blanks():
    assert split_tickers(" amd, intc ,,avgo ") == ["AMD", "INTC", "AVGO"]
    assert split_tickers(None) == []


def test_universe_dedupes_in_first_occurrence_order():
    universe = build_universe("NVDA", ["AMD", "INTC", "NVDA"], ["INTC", "TSM", "AMD"], [])
    assert universe == ["NVDA", "AMD", "INTC", "TSM"]
    assert len(universe) == len(set(universe))


def test_universe_drops_exclusions_but_never_the_subject():
    universe = build_universe("NVDA", ["AMD", "INTC"], ["TSM"], ["NVDA", "INTC", "TSM"])
    assert universe == ["NVDA", "AMD"]
