"""Tests for resolving references to real object keys."""

import pytest

from workflows.keys import ObjectRef
from workflows.resolver import (
    DIRECT,
    MATCH,
    SUFFIX,
    UNRESOLVED,
    KeyResolver,
    MatchCandidate,
    find_matches,
    normalize_name,
    pick_best,
    strip_timestamp_prefix,
)
from storage import ObjectInfo


@pytest.fixture
def resolver(store):
    return KeyResolver(store)


class TestNormalization:
    """Tests for name normalization helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("My Report.pdf", "my report pdf"),
        ("My+Report.pdf", "my report pdf"),
        ("My%20Report.PDF", "my report pdf"),
        ("my_report (final).pdf", "my report final pdf"),
        ("  spaced   out  ", "spaced out"),
        ("caf%C3%A9.txt", "caf txt"),
        ("", ""),
    ])
    def test_normalize_name(self, raw, expected):
        assert normalize_name(raw) == expected

    def test_non_ascii_names_reduce_to_extension(self):
        assert normalize_name("報告.pdf") == "pdf"
        assert normalize_name("請求書.pdf") == "pdf"
        assert normalize_name("Résumé.pdf") == "r sum pdf"

    def test_strip_timestamp_prefix(self):
        assert strip_timestamp_prefix("1700000000000_My Report.pdf") == "My Report.pdf"
        assert strip_timestamp_prefix("2024_budget_2025.xlsx") == "budget_2025.xlsx"
        assert strip_timestamp_prefix("report_1700.pdf") == "report_1700.pdf"
        assert strip_timestamp_prefix("1700.pdf") == "1700.pdf"


class TestMatching:
    """Tests for find_matches() and pick_best()."""

    def test_normalized_match(self):
        listing = [ObjectInfo("u1/1700000000000_My_Report.pdf"), ObjectInfo("u1/other.pdf")]
        assert [m.key for m in find_matches("My Report.pdf", listing)] == ["u1/1700000000000_My_Report.pdf"]

    def test_suffix_match(self):
        listing = [ObjectInfo("u1/Docs/copy-of-report.pdf")]
        assert [m.key for m in find_matches("report.pdf", listing)] == ["u1/Docs/copy-of-report.pdf"]

    def test_suffix_match_decodes_plus(self):
        listing = [ObjectInfo("u1/x+My Report.pdf")]
        assert len(find_matches("My Report.pdf", listing)) == 1

    def test_no_match(self):
        assert find_matches("a.pdf", [ObjectInfo("u1/b.pdf")]) == []

    def test_pick_best_prefers_recent(self, at):
        older = MatchCandidate("u1/old.pdf", at(10))
        newer = MatchCandidate("u1/new.pdf", at(20))
        undated = MatchCandidate("u1/undated.pdf", None)
        assert pick_best([undated, older, newer]).key == "u1/new.pdf"

    def test_pick_best_first_listed_wins_ties(self):
        first = MatchCandidate("u1/first.pdf")
        second = MatchCandidate("u1/second.pdf")
        assert pick_best([first, second]) is first

    def test_pick_best_empty(self):
        assert pick_best([]) is None


class TestDirectProbe:
    """Tests for the existence fast path."""

    def test_exact_key_skips_listing(self, store, resolver):
        store.add("primary", "u1/Docs/a.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/Docs/a.pdf"), owner="u1")

        assert result.key == "u1/Docs/a.pdf"
        assert result.bucket == "primary"
        assert result.found is True
        assert result.strategy == DIRECT
        assert not store.listed()


class TestListingSearch:
    """Tests for listing-based matching."""

    def test_fuzzy_match(self, store, resolver):
        store.add("primary", "u1/1700000000000_My Report.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/My Report.pdf"), owner="u1")

        assert result.key == "u1/1700000000000_My Report.pdf"
        assert result.found is True
        assert result.strategy == MATCH
        assert ("list", "primary", "u1/") in store.calls

    def test_match_in_other_folder(self, store, resolver):
        store.add("primary", "u1/Finance/1700000000000_Invoice_March.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/Invoice March.pdf"), owner="u1")
        assert result.key == "u1/Finance/1700000000000_Invoice_March.pdf"

    def test_tie_break_by_recency(self, store, resolver, at):
        store.add("primary", "u1/1700000000000_report.pdf", at(100))
        store.add("primary", "u1/1800000000000_report.pdf", at(500))
        store.add("primary", "u1/1750000000000_report.pdf", at(300))
        result = resolver.resolve(ObjectRef("primary", "u1/report.pdf"), owner="u1")
        assert result.key == "u1/1800000000000_report.pdf"

    def test_symbol_only_name(self, store, resolver):
        # Normalizes to "" so only the raw basename suffix can match
        store.add("primary", "u1/archive/2024/___")
        result = resolver.resolve(ObjectRef("primary", "u1/missing/___"), owner="u1")
        assert result.key == "u1/archive/2024/___"
        assert result.found is True

    def test_loose_suffix_fallback(self, store, resolver):
        store.add("primary", "u1/Docs/x_a+b.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/a+b.pdf"), owner="u1")
        assert result.key == "u1/Docs/x_a+b.pdf"
        assert result.found is True
        assert result.strategy == SUFFIX

    def test_no_owner_means_no_listing(self, store, resolver):
        store.add("primary", "u1/1700000000000_a.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"))
        assert result.found is False
        assert result.key == "u1/a.pdf"
        assert not store.listed()

    def test_miss_returns_original(self, store, resolver):
        store.add("primary", "u1/unrelated.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/Docs/wanted.pdf"), owner="u1")

        assert result.key == "u1/Docs/wanted.pdf"
        assert result.bucket == "primary"
        assert result.found is False
        assert result.strategy == UNRESOLVED

    def test_listing_error_is_a_miss(self, store, resolver):
        store.failing_buckets.add("primary")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")
        assert result.found is False
        assert result.key == "u1/a.pdf"

    def test_non_ascii_names_match_by_extension(self, store, resolver, at):
        store.add("primary", "u1/1700000000000_請求書.pdf", at(10))
        result = resolver.resolve(ObjectRef("primary", "u1/報告.pdf"), owner="u1")
        assert result.key == "u1/1700000000000_請求書.pdf"
        assert result.strategy == MATCH

    def test_other_owner_not_searched(self, store, resolver):
        store.add("primary", "u2/1700000000000_a.pdf")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")
        assert result.found is False


class TestSecondaryBucket:
    """Tests for the secondary bucket fallback."""

    def test_direct_hit_in_secondary(self, store):
        store.add("backup", "u1/a.pdf")
        resolver = KeyResolver(store, secondary_bucket="backup")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")

        assert result.bucket == "backup"
        assert result.key == "u1/a.pdf"
        assert result.strategy == DIRECT

    def test_match_in_secondary(self, store):
        store.add("backup", "u1/1700000000000_My_Report.pdf")
        resolver = KeyResolver(store, secondary_bucket="backup")
        result = resolver.resolve(ObjectRef("primary", "u1/My Report.pdf"), owner="u1")

        assert result.bucket == "backup"
        assert result.key == "u1/1700000000000_My_Report.pdf"

    def test_primary_match_short_circuits(self, store):
        store.add("primary", "u1/1700000000000_a.pdf")
        store.add("backup", "u1/a.pdf")
        resolver = KeyResolver(store, secondary_bucket="backup")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")

        assert result.bucket == "primary"
        assert not any(call[1] == "backup" for call in store.calls)

    def test_secondary_same_as_primary_is_skipped(self, store):
        resolver = KeyResolver(store, secondary_bucket="primary")
        resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")
        assert [c[0] for c in store.calls] == ["exists", "list"]

    def test_miss_everywhere_keeps_primary(self, store):
        resolver = KeyResolver(store, secondary_bucket="backup")
        result = resolver.resolve(ObjectRef("primary", "u1/a.pdf"), owner="u1")
        assert (result.bucket, result.key, result.found) == ("primary", "u1/a.pdf", False)
        assert [c[:2] for c in store.calls] == [
            ("exists", "primary"), ("list", "primary"),
            ("exists", "backup"), ("list", "backup"),
        ]


def test_undecomposable_reference(resolver, store):
    result = resolver.resolve(None, owner="u1", default_bucket="primary")
    assert result.key is None
    assert result.found is False
    assert result.ref is None
    assert store.calls == []
