"""
Unit tests for the single-pass text rewriter and locale key moves
"""

import itertools

import pytest

from i18n_nsfix.errors import OverlappingEditError
from i18n_nsfix.rewriter import Edit, KeyMove, apply_edits, apply_moves


TEXT = 'const t = useTranslations("blog");\nt("title");\n'


class TestApplyEdits:
    def edits(self):
        return [
            Edit(0, 5, "let", expected="const"),
            Edit.insert(len(TEXT), "// end\n"),
            Edit(35, 36, "tCommon", expected="t"),
            Edit.insert(34, "\nconst tCommon = useTranslations(\"common\");"),
        ]

    def test_result_independent_of_order(self):
        results = {apply_edits(TEXT, list(p))[0] for p in itertools.permutations(self.edits())}
        assert results == {
            'let t = useTranslations("blog");\nconst tCommon = useTranslations("common");\n'
            'tCommon("title");\n// end\n'
        }

    def test_overlap_raises_before_applying(self):
        with pytest.raises(OverlappingEditError):
            apply_edits(TEXT, [Edit(0, 10, "x"), Edit(5, 12, "y")])

    def test_two_insertions_at_same_offset_raise(self):
        with pytest.raises(OverlappingEditError):
            apply_edits(TEXT, [Edit.insert(3, "a"), Edit.insert(3, "b")])

    def test_insertion_before_replacement_at_same_offset(self):
        new_text, _ = apply_edits("abc", [Edit(0, 1, "X"), Edit.insert(0, ">")])
        assert new_text == ">Xbc"

    def test_adjacent_edits_do_not_overlap(self):
        new_text, _ = apply_edits("abcd", [Edit(0, 2, "12"), Edit(2, 4, "34")])
        assert new_text == "1234"

    def test_out_of_bounds(self):
        with pytest.raises(OverlappingEditError):
            apply_edits("abc", [Edit(2, 9, "")])

    def test_mismatch_is_skipped_and_reported(self):
        new_text, skipped = apply_edits(TEXT, [Edit(0, 5, "let", expected="var  "), Edit(35, 36, "x", expected="t")])
        assert new_text.startswith("const t")
        assert 'x("title")' in new_text
        assert len(skipped) == 1
        assert skipped[0].offset == 0
        assert skipped[0].found == "const"

    def test_empty_batch(self):
        assert apply_edits(TEXT, []) == (TEXT, [])


class TestApplyMoves:
    def test_spec_example(self, basic_store):
        added, deleted = apply_moves(basic_store, [KeyMove("ext_admin", "save_btn", "common", "save")])
        assert added == []
        assert deleted == [("ext_admin", "save_btn")]
        assert basic_store.get_value("common", "save") == "Save"
        assert basic_store.get_value("common", "save", "fr") == "Enregistrer"
        assert basic_store.get_value("ext_admin", "save_btn", "fr") is None

    def test_copies_before_deleting(self, basic_store):
        moves = [
            KeyMove("ext_admin", "users", "common", "users"),
            KeyMove("ext_admin", "users", "blog", "users"),
        ]
        added, deleted = apply_moves(basic_store, moves)
        assert added == [("common", "users"), ("blog", "users")]
        assert deleted == [("ext_admin", "users")]
        assert basic_store.get_value("blog", "users") == "Users"

    def test_source_that_is_also_a_target_is_kept(self, basic_store):
        moves = [
            KeyMove("ext_admin", "users", "common", "users"),
            KeyMove("blog", "heading", "ext_admin", "users"),
        ]
        _, deleted = apply_moves(basic_store, moves)
        assert ("ext_admin", "users") not in deleted
        assert basic_store.get_value("ext_admin", "users") == "Users"

    def test_noop_move(self, basic_store):
        assert apply_moves(basic_store, [KeyMove("common", "save", "common", "save")]) == ([], [])

    def test_to_dict(self):
        assert KeyMove("a", "b", "c", "d").to_dict() == {"from": "a.b", "to": "c.d"}
