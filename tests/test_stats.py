"""Unit tests for the statistics accumulator."""

import threading

import pytest

from common.stats import MAX_SENTINEL, MIN_SENTINEL, StatAccumulator


class TestSummary:
    """Tests for running min/max/sum/count."""

    def test_basic_summary(self):
        """Test summary of a few samples."""
        stat = StatAccumulator("create")
        for v in (3, 1, 2):
            stat.add_value(v)

        summary = stat.summary()
        assert summary.min == 1
        assert summary.max == 3
        assert summary.sum == 6
        assert summary.count == 3
        assert summary.avg == 2.0
        assert summary.has_data

    def test_empty_accumulator(self):
        """Test that no data keeps the sentinels and a zero mean."""
        stat = StatAccumulator("empty")

        assert stat.count == 0
        assert stat.min == MIN_SENTINEL
        assert stat.max == MAX_SENTINEL
        assert stat.avg == 0.0

        summary = stat.summary()
        assert not summary.has_data
        assert summary.min == 0
        assert summary.avg == 0

    def test_concurrent_add_value(self):
        """Test that concurrent producers lose no samples."""
        stat = StatAccumulator("concurrent")

        def produce():
            for i in range(1000):
                stat.add_value(i)

        threads = [threading.Thread(target=produce) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stat.count == 8000
        assert stat.sum == 8 * sum(range(1000))
        assert stat.min == 0
        assert stat.max == 999


class TestDistribution:
    """Tests for the frequency table and the CDF."""

    def test_frequency_table(self):
        """Test exact counts in ascending order."""
        stat = StatAccumulator("freq")
        for v in (5, 1, 5, 3, 1, 5):
            stat.add_value(v)

        assert stat.frequency_table() == [(1, 2), (3, 1), (5, 3)]

    def test_frequency_table_idempotent(self):
        """Test that the table does not change between calls."""
        stat = StatAccumulator("freq")
        for v in (2, 2, 7):
            stat.add_value(v)

        assert stat.frequency_table() == stat.frequency_table()

    def test_cdf(self):
        """Test CDF points, one per sample, starting at the origin."""
        stat = StatAccumulator("cdf")
        for v in (1, 1, 2):
            stat.add_value(v)

        points = stat.cdf()
        assert [value for value, _ in points] == [0, 1, 1, 2]
        assert [fraction for _, fraction in points] == pytest.approx([0.0, 1 / 3, 2 / 3, 1.0])

    def test_cdf_empty(self):
        """Test that an empty accumulator only has the origin."""
        assert StatAccumulator("cdf").cdf() == [(0, 0.0)]

    def test_cdf_data_string(self):
        """Test one 'value fraction' line per CDF point."""
        stat = StatAccumulator("cdf")
        stat.add_value(4)

        assert stat.cdf_data_string() == "0 0.0\n4 1.0\n"


class TestFileOutput:
    """Tests for writing the stat and CDF files."""

    def test_str_block(self):
        """Test the summary block layout."""
        stat = StatAccumulator("create")
        stat.add_value(2)
        stat.add_value(4)

        assert str(stat) == "min = 2\nmax = 4\navg = 3.0\nsum = 6\ncount = 2\n"

    def test_write_summary_appends(self, temp_dir):
        """Test that the stat file is appended to."""
        path = temp_dir / "stat.out"
        stat = StatAccumulator("create")
        stat.add_value(1)

        assert stat.write_summary(path)
        assert stat.write_summary(path)

        content = path.read_text()
        assert content.count("--- create stats ---\n") == 2
        assert "count = 1\n" in content

    def test_write_cdf_truncates(self, temp_dir):
        """Test that the CDF file is overwritten."""
        path = temp_dir / "create-lat.dat"
        path.write_text("old content\n")
        stat = StatAccumulator("create")
        stat.add_value(7)

        assert stat.write_cdf(path)
        assert path.read_text() == "0 0.0\n7 1.0\n"

    def test_write_out_both_sections(self, temp_dir):
        """Test the combined stats and cdf output."""
        path = temp_dir / "out.txt"
        stat = StatAccumulator("lat")
        stat.add_value(3)

        stat.write_out(path, append=False)
        content = path.read_text()

        assert content.startswith("--- lat stats ---\n")
        assert "--- lat cdf ---\n0 0.0\n3 1.0\n" in content

    def test_write_error_is_logged(self, temp_dir, caplog):
        """Test that I/O errors are reported, not raised."""
        blocker = temp_dir / "file"
        blocker.write_text("")
        stat = StatAccumulator("create")

        assert stat.write_summary(blocker / "stat.out") is False
        assert "Failed to write create stats" in caplog.text
