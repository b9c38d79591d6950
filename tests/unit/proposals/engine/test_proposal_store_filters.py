from src.core.proposals.store import ProposalStore, matches_filters
from tests.factories import record


def _store(*records):
    store = ProposalStore()
    store.replace_all(records)
    return store


def _sample_store():
    return _store(
        record("p1", name="DeFi Yield", description="stablecoin vault", category="defi"),
        record("p2", name="NFT Index", description="blue chip basket", category="nft"),
        record("p3", name="Layer 2", description="DEFI rollup exposure", category="crypto"),
        record("p4", name="Treasury", description="closed round", status="completed"),
    )


def test_apply_filters_without_constraints_returns_every_record_in_order():
    store = _sample_store()

    assert [r.proposal_id for r in store.apply_filters("", "all", "all")] == [
        "p1",
        "p2",
        "p3",
        "p4",
    ]
    assert [r.proposal_id for r in store.apply_filters(None, None, None)] == store.ids()


def test_search_term_matches_name_or_description_case_insensitively():
    store = _sample_store()

    matches = store.apply_filters("defi", "all", "all")

    assert [r.proposal_id for r in matches] == ["p1", "p3"]


def test_search_without_match_returns_empty_list():
    assert _sample_store().apply_filters("nothing-like-this") == []


def test_category_and_status_constraints_are_conjunctive():
    store = _sample_store()

    assert [r.proposal_id for r in store.apply_filters(None, "defi", "all")] == ["p1"]
    assert [r.proposal_id for r in store.apply_filters("defi", "crypto", "active")] == ["p3"]
    assert store.apply_filters("defi", "nft", "all") == []
    assert [r.proposal_id for r in store.apply_filters(None, "all", "completed")] == ["p4"]


def test_matches_filters_is_and_of_each_single_filter():
    candidate = record("p9", name="DeFi Yield", category="defi", status="active")
    combos = [
        ("yield", "defi", "active"),
        ("yield", "nft", "active"),
        ("zzz", "defi", "active"),
        ("yield", "defi", "completed"),
    ]
    for search_term, category, status in combos:
        combined = matches_filters(
            candidate, search_term=search_term, category=category, status=status
        )
        each = (
            matches_filters(candidate, search_term=search_term)
            and matches_filters(candidate, category=category)
            and matches_filters(candidate, status=status)
        )
        assert combined == each


def test_replace_all_swaps_contents_and_drops_duplicates():
    store = _store(record("old"))

    store.replace_all([record("a", name="first"), record("b"), record("a", name="second")])

    assert "old" not in store
    assert store.ids() == ["a", "b"]
    assert store.get("a").name == "second"
    assert len(store) == 2


def test_store_returns_copies_that_do_not_alias_internal_state():
    store = _store(record("a", name="original"))

    fetched = store.get("a")
    fetched.name = "mutated"
    store.ordered()[0].name = "mutated again"

    assert store.get("a").name == "original"
    assert store.get("missing") is None


def test_clear_empties_the_store():
    store = _store(record("a"), record("b"))

    store.clear()

    assert len(store) == 0
    assert store.ordered() == []
