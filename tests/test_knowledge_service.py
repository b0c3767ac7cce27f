import os

import pytest

from app.services.knowledge_service import KnowledgeBase, KnowledgeEntry, parse_entries


def _bump_mtime(path, seconds: int = 10) -> None:
    stat = path.stat()
    os.utime(path, (stat.st_atime + seconds, stat.st_mtime + seconds))


class TestParseEntries:
    def test_top_level_mapping(self):
        entries = parse_entries({101: {"title": "Login failed", "steps": ["a", "b"]}})
        assert entries["101"] == KnowledgeEntry(code="101", title="Login failed", steps=("a", "b"))

    def test_entries_key(self):
        entries = parse_entries({"entries": {"204": {"title": "Declined", "keywords": "card"}}})
        assert entries["204"].keywords == ("card",)

    def test_skips_malformed_entries(self):
        entries = parse_entries({"101": "just a string", "102": {"title": "ok"}})
        assert list(entries) == ["102"]

    def test_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            parse_entries(["101", "102"])


class TestLookup:
    def test_exact_code(self, knowledge):
        entry = knowledge.lookup("101")
        assert entry.title == "Login failed"
        assert entry.steps == ("Check the email and password", "Reset the password")

    def test_unknown_code(self, knowledge):
        assert knowledge.lookup("999") is None

    def test_missing_file_is_empty(self, tmp_path):
        assert KnowledgeBase(tmp_path / "missing.yaml").lookup("101") is None


class TestSearch:
    def test_title_matches_come_first(self, knowledge):
        codes = [code for code, _ in knowledge.search("LOGIN")]
        assert codes == ["101", "305"]

    def test_keyword_match(self, knowledge):
        assert [code for code, _ in knowledge.search("card")] == ["204"]

    def test_code_match(self, knowledge):
        assert [code for code, _ in knowledge.search("30")] == ["305"]

    def test_blank_keyword(self, knowledge):
        assert knowledge.search("   ") == []


class TestReload:
    def test_reloads_when_file_changes(self, knowledge, knowledge_path):
        assert knowledge.lookup("777") is None

        knowledge_path.write_text('"777":\n  title: New entry\n', encoding="utf-8")
        _bump_mtime(knowledge_path)

        assert knowledge.lookup("777").title == "New entry"
        assert knowledge.lookup("101") is None

    def test_bad_yaml_keeps_previous_entries(self, knowledge, knowledge_path):
        assert knowledge.lookup("101") is not None

        knowledge_path.write_text("entries: [unclosed", encoding="utf-8")
        _bump_mtime(knowledge_path)

        assert knowledge.lookup("101").title == "Login failed"

    def test_deleted_file_keeps_previous_entries(self, knowledge, knowledge_path):
        assert knowledge.lookup("101") is not None

        knowledge_path.unlink()

        assert knowledge.lookup("101") is not None
