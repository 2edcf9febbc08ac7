"""
Tests for season/episode inference and recursive series building.
"""
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import NotFound
from services.catalog import SeriesBuilder, infer_season, natural_key, parse_episode


def numbering(entries):
    return [(e.season, e.episode) for e in entries]


class TestParseEpisode:

    @pytest.mark.parametrize("name,expected", [
        ("S01E01.mkv", (1, 1)),
        ("Show.Name.s02e105.720p.mkv", (2, 105)),
        ("Show S03 E04.mp4", (3, 4)),
        ("Season 3 Episode 4.mp4", (3, 4)),
        ("season_2-ep_07.mkv", (2, 7)),
        ("3x07 - The One.mkv", (3, 7)),
        ("[2.05] Title.mkv", (2, 5)),
        ("07 - Intro.mkv", (1, 7)),
        ("12.mkv", (1, 12)),
    ])
    def test_patterns(self, name, expected):
        assert parse_episode(name) == expected

    @pytest.mark.parametrize("name", [
        "Trailer.mkv",
        "Movie 1920x1080.mkv",
        "2001 A Space Odyssey.mkv",
        "Behind the scenes part 2.mkv",
    ])
    def test_no_match(self, name):
        assert parse_episode(name) is None

    def test_sxxeyy_wins_over_later_patterns(self):
        assert parse_episode("05 - S02E03 - 4x09.mkv") == (2, 3)

    def test_word_form_wins_over_nxm(self):
        assert parse_episode("Season 1 Episode 2 (3x04).mkv") == (1, 2)

    def test_nxm_wins_over_bracket_form(self):
        assert parse_episode("2x03 [4.05].mkv") == (2, 3)


class TestInferSeason:

    @pytest.mark.parametrize("name,expected", [
        ("Season 2", 2),
        ("season_03", 3),
        ("SEASON-10", 10),
        ("Show Season1", 1),
        ("Extras", None),
        ("Specials 2019", None),
    ])
    def test_folder_names(self, name, expected):
        assert infer_season(name) == expected


def test_natural_key_orders_numbers_numerically():
    names = ["Episode 10.mkv", "episode 2.mkv", "Episode 1.mkv"]
    assert sorted(names, key=natural_key) == ["Episode 1.mkv", "episode 2.mkv", "Episode 10.mkv"]


class TestBuildSeries:

    @pytest.mark.asyncio
    async def test_season_folders_flatten_in_order(self, drive, builder):
        drive.folder("root", "")
        drive.folder("s2", "Season 2", parent="root")
        drive.folder("s1", "Season 1", parent="root")
        drive.video("e12", "S01E02.mkv", parent="s1")
        drive.video("e11", "S01E01.mkv", parent="s1")
        drive.video("e21", "S02E01.mkv", parent="s2")

        entries = await builder.build_series("root")

        assert numbering(entries) == [(1, 1), (1, 2), (2, 1)]
        assert [e.id for e in entries] == ["e11", "e12", "e21"]

    @pytest.mark.asyncio
    async def test_leading_number_without_season_marker(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("intro", "07 - Intro.mkv", parent="root")

        entries = await builder.build_series("root")

        assert numbering(entries) == [(1, 7)]

    @pytest.mark.asyncio
    async def test_positional_numbering_and_inherited_seasons(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("b", "b.mkv", parent="root")
        drive.video("a", "a.mkv", parent="root")
        drive.folder("s3", "Season 3", parent="root")
        drive.video("x", "pilot.mkv", parent="s3")
        drive.video("y", "finale.mkv", parent="s3")
        drive.folder("extras", "Extras", parent="s3")
        drive.video("z", "bloopers.mkv", parent="extras")

        entries = await builder.build_series("root")

        by_id = {e.id: (e.season, e.episode) for e in entries}
        assert by_id == {"a": (1, 1), "b": (1, 2), "y": (3, 1), "x": (3, 2), "z": (3, 1)}
        # (3, 1) tie keeps discovery order: Season 3's own files before its subfolder
        assert [e.id for e in entries] == ["a", "b", "y", "z", "x"]

    @pytest.mark.asyncio
    async def test_entry_fields_come_from_the_file(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("f", "S01E01.mkv", parent="root", created="2023-05-01T10:00:00Z")

        [entry] = await builder.build_series("root")

        assert entry.title == "S01E01.mkv"
        assert entry.released_at == "2023-05-01T10:00:00Z"
        assert entry.thumbnail_url == "https://thumbs.example/f"

    @pytest.mark.asyncio
    async def test_non_video_files_are_ignored(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("v", "S01E01.mkv", parent="root")
        drive.video("sub", "S01E01.srt", parent="root", mime_type="application/x-subrip")
        drive.video("img", "poster.jpg", parent="root", mime_type="image/jpeg")

        entries = await builder.build_series("root")

        assert [e.id for e in entries] == ["v"]

    @pytest.mark.asyncio
    async def test_failing_subfolder_keeps_siblings(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("r1", "Intro.mkv", parent="root")
        drive.folder("s1", "Season 1", parent="root")
        drive.video("e11", "S01E01.mkv", parent="s1")
        drive.folder("s2", "Season 2", parent="root")
        drive.video("e21", "S02E01.mkv", parent="s2")
        drive.failing.add("s2")

        entries = await builder.build_series("root")

        assert sorted(e.id for e in entries) == ["e11", "r1"]
        s2_requests = [r for r in drive.list_requests() if "'s2'" in r.url.params["q"]]
        assert len(s2_requests) == 4

    @pytest.mark.asyncio
    async def test_missing_root_is_not_found(self, drive, builder):
        with pytest.raises(NotFound):
            await builder.build_series("missing")

    @pytest.mark.asyncio
    async def test_file_as_root_is_not_found(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("f", "S01E01.mkv", parent="root")

        with pytest.raises(NotFound):
            await builder.build_series("f")

    @pytest.mark.asyncio
    async def test_cyclic_folders_terminate(self, drive, builder):
        drive.folder("root", "Show")
        drive.folder("loop", "Season 1", parent="root", extra_parents=["inner"])
        drive.folder("inner", "Season 2", parent="loop")
        drive.video("e11", "S01E01.mkv", parent="loop")
        drive.video("e21", "S02E01.mkv", parent="inner")

        entries = await builder.build_series("root")

        assert [e.id for e in entries] == ["e11", "e21"]

    @pytest.mark.asyncio
    async def test_depth_limit_truncates(self, drive, lister):
        drive.folder("root", "Show")
        drive.folder("a", "Season 1", parent="root")
        drive.folder("b", "Deeper", parent="a")
        drive.video("shallow", "S01E01.mkv", parent="a")
        drive.video("deep", "S01E02.mkv", parent="b")

        entries = await SeriesBuilder(lister, max_depth=1).build_series("root")

        assert [e.id for e in entries] == ["shallow"]

    @pytest.mark.asyncio
    async def test_listings_are_cached_between_builds(self, drive, builder):
        drive.folder("root", "Show")
        drive.video("e1", "S01E01.mkv", parent="root")

        await builder.build_series("root")
        listed = len(drive.list_requests())
        await builder.build_series("root")

        assert len(drive.list_requests()) == listed
