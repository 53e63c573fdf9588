"""
Unit tests for near-duplicate merging of ranked search results.
"""

from conftest import make_result

from app.services.dedup import edit_distance, merge_results, normalize_title, similarity, url_path_key


class TestNormalization:
    def test_normalize_title_strips_case_and_punctuation(self) -> None:
        """Lowercases and removes everything that is not a letter or digit."""
        assert normalize_title("Fed Raises Rates!") == "fedraisesrates"
        assert normalize_title("  A-B_C 1.2 ") == "abc12"
        assert normalize_title("") == ""

    def test_normalize_title_keeps_non_ascii_letters_and_digits(self) -> None:
        """Unicode-aware: accented headlines do not collapse onto their ASCII skeleton."""
        assert normalize_title("Élection: café ²!") == "électioncafé²"
        assert normalize_title("Élection") != normalize_title("lection")

    def test_url_path_key_ignores_query_and_fragment(self) -> None:
        """Path is lowercased; query string and fragment do not matter."""
        assert url_path_key("https://a.com/News/Story?id=1#top") == "/news/story"
        assert url_path_key("https://a.com") == "/"

    def test_url_path_key_unparseable_falls_back_to_raw(self) -> None:
        """Strings without scheme/host use the whole lowercased string."""
        assert url_path_key("Not A URL") == "not a url"


class TestSimilarity:
    def test_edit_distance(self) -> None:
        assert edit_distance("kitten", "sitting") == 3
        assert edit_distance("", "abc") == 3
        assert edit_distance("same", "same") == 0

    def test_identical_and_empty(self) -> None:
        """Identical strings score 1; an empty side scores 0."""
        assert similarity("abc", "abc") == 1.0
        assert similarity("", "abc") == 0.0
        assert similarity("abc", "") == 0.0

    def test_symmetric(self) -> None:
        pairs = [("fedraisesrates", "fedraisesrate"), ("apple", "maple"), ("a", "abcdef")]
        for a, b in pairs:
            assert similarity(a, b) == similarity(b, a)

    def test_ratio(self) -> None:
        """1 - distance / len(longer)."""
        assert similarity("abcd", "abce") == 0.75


class TestMergeResults:
    def test_near_duplicate_titles_on_same_host_collapse(self) -> None:
        """A one-character title variant on the same host is dropped; the first seen wins."""
        primary = [make_result("Fed raises rates", "https://x.com/a")]
        secondary = [make_result("Fed raises rates.", "https://x.com/b")]
        merged = merge_results(primary, secondary)
        assert [r.url for r in merged] == ["https://x.com/a"]

    def test_distinct_stories_on_same_host_are_kept(self) -> None:
        primary = [make_result("Fed raises rates", "https://x.com/a")]
        secondary = [make_result("Apple unveils new phone", "https://x.com/c")]
        merged = merge_results(primary, secondary)
        assert [r.url for r in merged] == ["https://x.com/a", "https://x.com/c"]

    def test_same_path_different_query_is_duplicate(self) -> None:
        primary = [make_result("Story one", "https://a.com/story?utm=1")]
        secondary = [make_result("Entirely different headline", "https://b.com/story?ref=2")]
        assert len(merge_results(primary, secondary)) == 1

    def test_same_normalized_title_across_hosts_is_duplicate(self) -> None:
        primary = [make_result("Markets Rally!", "https://a.com/one")]
        secondary = [make_result("markets rally", "https://b.com/two")]
        assert len(merge_results(primary, secondary)) == 1

    def test_similar_titles_on_different_hosts_are_kept(self) -> None:
        """Fuzzy matching only applies within one host."""
        primary = [make_result("Fed raises rates", "https://a.com/one")]
        secondary = [make_result("Fed raises ratez", "https://b.com/two")]
        assert len(merge_results(primary, secondary)) == 2

    def test_rank_order_preserved_primary_first(self) -> None:
        primary = [make_result(f"Primary {i}", f"https://p.com/{i}") for i in range(3)]
        secondary = [make_result(f"Other story number {i}", f"https://s.com/{i}x") for i in range(3)]
        merged = merge_results(primary, secondary)
        assert [r.url for r in merged] == [r.url for r in primary] + [r.url for r in secondary]

    def test_idempotent(self) -> None:
        """Merging a list with itself yields the list unchanged."""
        primary = [
            make_result("Fed raises rates", "https://x.com/a"),
            make_result("Apple unveils new phone", "https://x.com/c"),
            make_result("Markets rally", "https://y.com/markets"),
        ]
        assert merge_results(primary, primary) == primary

    def test_tracking_query_and_punctuation_variant_collapse_to_one(self) -> None:
        primary = [make_result("Fed Raises Rates", "https://a.com/news/1")]
        secondary = [make_result("fed raises rates!!", "https://a.com/news/1?utm=x")]
        merged = merge_results(primary, secondary)
        assert merged == primary

    def test_distinct_headlines_on_same_domain_both_kept(self) -> None:
        primary = [make_result("Market Rally Continues", "https://a.com/s1")]
        secondary = [make_result("Tech Layoffs Announced", "https://a.com/s2")]
        assert len(merge_results(primary, secondary)) == 2

    def test_duplicates_within_primary_are_removed(self) -> None:
        primary = [make_result("Same", "https://a.com/1"), make_result("Same", "https://b.com/2")]
        assert len(merge_results(primary, [])) == 1

    def test_threshold_is_configurable(self) -> None:
        primary = [make_result("abcdefghij", "https://x.com/1")]
        secondary = [make_result("abcdefghzz", "https://x.com/2")]
        assert len(merge_results(primary, secondary, threshold=0.8)) == 2
        assert len(merge_results(primary, secondary, threshold=0.7)) == 1
