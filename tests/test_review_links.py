import random

import pytest

from pickup_sms.infrastructure.importer import (
    ReviewLinkImportError,
    ReviewLinkResolver,
    parse_review_links,
)

CSV = b"""City,stashpoint_name,Google_Review_URL
London,Kings Cross Cafe,https://g.page/r/london-1/review
london,Soho Hotel,https://g.page/r/london-2/review
Edinburgh,Waverley Shop,https://g.page/r/edinburgh-1/review
Leeds,Broken Row,not-a-url
,No City,https://g.page/r/orphan/review
"""


def test_parse_groups_by_lowercased_city_and_skips_bad_rows():
    pool = parse_review_links(CSV)
    assert pool == {
        "london": ("https://g.page/r/london-1/review", "https://g.page/r/london-2/review"),
        "edinburgh": ("https://g.page/r/edinburgh-1/review",),
    }


def test_missing_column_is_rejected():
    with pytest.raises(ReviewLinkImportError):
        parse_review_links(b"city,url\nLondon,https://example.com\n")


class TestReviewLinkResolver:
    def test_case_insensitive_lookup(self, resolver):
        assert resolver.has_links("LONDON")
        assert resolver.has_links("  London ")
        assert not resolver.has_links("Glasgow")
        assert not resolver.has_links(None)

    def test_pick_link_without_fallback(self, resolver):
        assert resolver.pick_link("Glasgow") is None
        assert resolver.pick_link("London").startswith("https://g.page/r/london-")

    def test_pick_link_with_fallback(self, resolver):
        assert resolver.pick_link("Glasgow", allow_fallback=True).startswith("https://g.page/r/london-")

    def test_resolve_reports_fallback_use(self, resolver):
        direct = resolver.resolve("London")
        assert direct.found and not direct.used_fallback

        fallback = resolver.resolve("Glasgow")
        assert fallback.found and fallback.used_fallback

    def test_resolve_nothing(self):
        resolver = ReviewLinkResolver(fallback_city="london")
        resolution = resolver.resolve("Glasgow")
        assert resolution.url is None
        assert not resolution.found

    def test_random_pick_covers_every_link(self):
        links = ("https://a.example/1", "https://a.example/2")
        resolver = ReviewLinkResolver(pool={"york": links}, rng=random.Random(1))
        picks = {resolver.pick_link("york") for _ in range(50)}
        assert picks == set(links)

    def test_missing_file_gives_empty_pool(self, tmp_path, resolver):
        assert resolver.load_file(tmp_path / "nope.csv") == 0
        assert resolver.link_count() == 0

    def test_upload_persists_and_swaps(self, tmp_path, resolver):
        path = tmp_path / "links" / "review-links.csv"
        assert resolver.upload(CSV, path) == 2
        assert path.read_bytes() == CSV
        assert resolver.has_links("edinburgh")

        fresh = ReviewLinkResolver()
        fresh.load_file(path)
        assert fresh.cities() == ["edinburgh", "london"]

    def test_bad_upload_keeps_current_pool(self, tmp_path, resolver):
        path = tmp_path / "review-links.csv"
        with pytest.raises(ReviewLinkImportError):
            resolver.upload(b"nothing,useful\n1,2\n", path)
        assert not path.exists()
        assert resolver.has_links("london")
