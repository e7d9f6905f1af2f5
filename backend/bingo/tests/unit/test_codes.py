from bingo.logic.codes import (
    JOIN_CODE_ALPHABET,
    JOIN_CODE_LENGTH,
    generate_join_code,
    is_valid_join_code,
    lobby_path,
    normalize_join_code,
    play_path,
)


class TestJoinCodes:
    def test_generated_codes_are_valid(self):
        for _ in range(200):
            code = generate_join_code()
            assert len(code) == JOIN_CODE_LENGTH
            assert is_valid_join_code(code)

    def test_alphabet_has_no_look_alikes(self):
        for glyph in "0O1IL":
            assert glyph not in JOIN_CODE_ALPHABET

    def test_normalize_uppercases_and_strips(self):
        assert normalize_join_code("  abcd23 ") == "ABCD23"

    def test_invalid_codes(self):
        assert not is_valid_join_code("ABCD2")
        assert not is_valid_join_code("ABCD234")
        assert not is_valid_join_code("ABCD20")
        assert not is_valid_join_code("abcd23")

    def test_deep_links(self):
        assert lobby_path("ABCD23") == "/lobby/ABCD23"
        assert play_path("ABCD23") == "/play/ABCD23"
