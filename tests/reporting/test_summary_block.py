"""Tests for summary block injection into renderer text files."""

from datetime import datetime

from neuroreport.reporting.summary_block import (
    SummaryMetadata,
    inject_summary_block,
    render_summary_block,
)


class TestSummaryMetadata:
    """Tests for SummaryMetadata."""

    def test_as_comment(self):
        metadata = SummaryMetadata(
            model_id="gemma3:4b",
            quality_score=90,
            timestamp=datetime(2025, 1, 2, 3, 4, 5),
        )

        assert metadata.as_comment() == (
            "<!-- Generated: 2025-01-02 03:04:05 | Model: gemma3:4b | Quality: 90 -->"
        )

    def test_missing_quality(self):
        metadata = SummaryMetadata(timestamp=datetime(2025, 1, 2))

        assert metadata.as_comment().endswith("Model: unknown | Quality: N/A -->")


class TestRenderSummaryBlock:
    """Tests for render_summary_block."""

    def test_replaces_existing_block(self):
        existing = "## Memory\n\n<summary>\n\nOld text.\n\n</summary>\n\n```{r}\n```\n"

        updated = render_summary_block(existing, "New text.")

        assert "Old text." not in updated
        assert "<summary>\n\nNew text.\n\n</summary>" in updated
        assert updated.startswith("## Memory\n\n")
        assert updated.endswith("```{r}\n```\n")

    def test_expands_placeholder(self):
        updated = render_summary_block("Intro\n<summary/>\nOutro", "Narrative.")

        assert updated == "Intro\n<summary>\n\nNarrative.\n\n</summary>\nOutro"

    def test_prepends_when_absent(self):
        updated = render_summary_block("Existing content", "Narrative.")

        assert updated == "<summary>\n\nNarrative.\n\n</summary>\n\nExisting content"

    def test_empty_file(self):
        assert render_summary_block("", "Narrative.") == (
            "<summary>\n\nNarrative.\n\n</summary>\n"
        )

    def test_metadata_comment(self):
        metadata = SummaryMetadata(model_id="m", quality_score=100)

        updated = render_summary_block("", "Narrative.", metadata)

        assert updated.startswith(f"<summary>\n\n{metadata.as_comment()}\n\nNarrative.")

    def test_text_with_backslashes_is_literal(self):
        updated = render_summary_block("<summary>x</summary>", r"Path C:\new\1")

        assert r"Path C:\new\1" in updated


class TestInjectSummaryBlock:
    """Tests for inject_summary_block."""

    def test_creates_file(self, tmp_path):
        path = tmp_path / "out" / "_02-05_memory_text.qmd"

        written = inject_summary_block(path, "Narrative.")

        assert written == path
        assert path.read_text() == "<summary>\n\nNarrative.\n\n</summary>\n"

    def test_updates_in_place(self, tmp_path):
        path = tmp_path / "_02-05_memory_text.qmd"
        path.write_text("<summary>\n\nFirst.\n\n</summary>\n\nTail\n")

        inject_summary_block(path, "Second.")

        assert path.read_text() == "<summary>\n\nSecond.\n\n</summary>\n\nTail\n"
        assert list(tmp_path.glob("*.tmp")) == []
