"""Tests for terminal display helpers."""
from qqmusic.models import Cue
from qqmusic.ui import fmt_time, print_lyrics, progress_bar


class TestFormatting:
    """Tests for fmt_time and progress_bar."""

    def test_fmt_time(self) -> None:
        assert fmt_time(0) == "00:00"
        assert fmt_time(75.9) == "01:15"
        assert fmt_time(-4) == "00:00"

    def test_progress_bar_fill(self) -> None:
        bar = progress_bar(50.0, 200.0, width=8)
        assert bar.count("━") == 2
        assert bar.count("·") == 6

    def test_progress_bar_clamped(self) -> None:
        assert progress_bar(500.0, 200.0, width=4).count("━") == 4

    def test_progress_bar_unknown_duration(self) -> None:
        assert progress_bar(10.0, 0.0) == ""


class TestPrintLyrics:
    """Tests for the lyric viewport."""

    def test_current_line_in_view(self, capsys) -> None:
        cues = [Cue(float(i), f"line {i}") for i in range(20)]
        print_lyrics(cues, 10, before=1, after=1)
        out = capsys.readouterr().out
        assert "line 10" in out
        assert "line 9" in out and "line 11" in out
        assert "line 12" not in out
