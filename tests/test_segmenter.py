from linemend.segmenter import WordWrapSimulator, tokenise_preserving_whitespace
from linemend.widths import CharacterWidthEstimator


def make_simulator(**kwargs):
    return WordWrapSimulator(CharacterWidthEstimator(), **kwargs)


def test_tokenise_latin_and_cjk():
    assert tokenise_preserving_whitespace("hello  world") == ["hello", "  ", "world"]
    assert tokenise_preserving_whitespace("日本語") == ["日", "本", "語"]
    assert tokenise_preserving_whitespace("abcあい") == ["abc", "あ", "い"]


def test_cjk_wraps_between_any_characters():
    lines = make_simulator().simulate("あ" * 10, 80, 16)
    assert [line.text for line in lines] == ["あ" * 5, "あ" * 5]
    assert [line.index for line in lines] == [0, 1]
    assert {line.paragraph for line in lines} == {0}


def test_latin_wraps_at_whitespace():
    lines = make_simulator().simulate("aaaa bbbb", 40, 10)
    assert [line.text.strip() for line in lines] == ["aaaa", "bbbb"]


def test_oversized_token_keeps_its_own_line():
    lines = make_simulator().simulate("supercalifragilistic", 10, 12)
    assert [line.text for line in lines] == ["supercalifragilistic"]


def test_empty_paragraphs_produce_empty_lines():
    lines = make_simulator().simulate("a\n\nb", 400, 12)
    assert [(line.text, line.paragraph) for line in lines] == [("a", 0), ("", 1), ("b", 2)]
    assert [line.text for line in make_simulator().simulate("", 400, 12)] == [""]


def test_soft_breaks_start_new_paragraphs():
    lines = make_simulator(soft_break_chars=["\u2028"]).simulate("a\u2028b", 400, 12)
    assert [line.text for line in lines] == ["a", "b"]
