from __future__ import annotations

import pytest

from rubyhook.furigana import (
    AnnotatedSpan,
    FuriganaAnnotator,
    Token,
    TokenizerUnavailableError,
    escape_html,
    katakana_to_hiragana,
    render_spans,
)


class _StubTokenizer:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.calls: list[str] = []

    def tokenize(self, text: str) -> list[Token]:
        self.calls.append(text)
        return list(self.tokens)


def _annotator(*tokens: Token) -> FuriganaAnnotator:
    stub = _StubTokenizer(list(tokens))
    return FuriganaAnnotator(lambda: stub)


def test_blank_input_skips_tokenizer() -> None:
    def _factory():
        raise AssertionError("tokenizer must not be created for blank input")

    annotator = FuriganaAnnotator(_factory)
    assert annotator.annotate("") == ""
    assert annotator.annotate("   ") == ""
    assert annotator.annotate("\n\t") == ""


def test_kanji_gets_ruby_and_kana_stays_plain() -> None:
    annotator = _annotator(
        Token("漢字", 0, 2, "カンジ"),
        Token("と", 2, 3, "ト"),
        Token("カナ", 3, 5, "カナ"),
    )
    assert annotator.annotate("漢字とカナ") == "<ruby>漢字<rt>かんじ</rt></ruby>とカナ"


def test_gaps_and_trailing_text_are_kept() -> None:
    annotator = _annotator(Token("私", 1, 2, "ワタシ"), Token("は", 3, 4, "ハ"))
    assert annotator.annotate(" 私 は!?") == " <ruby>私<rt>わたし</rt></ruby> は!?"


def test_markup_characters_are_escaped() -> None:
    annotator = _annotator(Token("猫", 3, 4, "ネコ"))
    assert annotator.annotate("<&>猫\"'") == "&lt;&amp;&gt;<ruby>猫<rt>ねこ</rt></ruby>&quot;&#39;"


def test_placeholder_and_empty_readings_are_dropped() -> None:
    annotator = _annotator(Token("、", 0, 1, "*"), Token("Ａ", 1, 2, ""), Token("日", 2, 3, "  "))
    assert annotator.annotate("、Ａ日") == "、Ａ日"


def test_offsets_are_clamped_to_text_length() -> None:
    annotator = _annotator(Token("日本", 0, 40, "ニホン"), Token("語", 50, 60, "ゴ"))
    assert annotator.annotate("日本") == "<ruby>日本<rt>にほん</rt></ruby>"


def test_segments_reconstruct_the_original_text() -> None:
    text = "東京都に住む🐈さん"
    annotator = _annotator(
        Token("に", 3, 4, "ニ"),
        Token("東京", 0, 2, "トウキョウ"),
        Token("京都", 1, 3, "キョウト"),
        Token("住む", 4, 6, "スム"),
    )
    spans = annotator.segment(text)
    assert "".join(span.surface for span in spans) == text
    assert spans[0] == AnnotatedSpan("東京", "とうきょう")
    assert spans[1] == AnnotatedSpan("都", "きょうと")
    assert spans[-1] == AnnotatedSpan("🐈さん", None)


def test_tokenizer_is_created_once() -> None:
    created: list[_StubTokenizer] = []

    def _factory() -> _StubTokenizer:
        stub = _StubTokenizer([Token("本", 0, 1, "ホン")])
        created.append(stub)
        return stub

    annotator = FuriganaAnnotator(_factory)
    assert annotator.annotate("本") == "<ruby>本<rt>ほん</rt></ruby>"
    assert annotator.annotate("本") == "<ruby>本<rt>ほん</rt></ruby>"
    assert len(created) == 1
    assert created[0].calls == ["本", "本"]


def test_tokenizer_failure_surfaces_to_caller() -> None:
    attempts: list[int] = []

    def _factory():
        attempts.append(1)
        raise TokenizerUnavailableError("dictionary missing")

    annotator = FuriganaAnnotator(_factory)
    with pytest.raises(TokenizerUnavailableError):
        annotator.annotate("日本")
    with pytest.raises(TokenizerUnavailableError):
        annotator.warm_up()
    assert len(attempts) == 2


def test_katakana_to_hiragana_only_maps_the_kana_block() -> None:
    assert katakana_to_hiragana("カタカナ") == "かたかな"
    assert katakana_to_hiragana("ヴヵヶ") == "ゔゕゖ"
    assert katakana_to_hiragana("ァ") == "ぁ"
    assert katakana_to_hiragana("ラーメンABC漢") == "らーめんABC漢"
    assert katakana_to_hiragana("ヷ・ヽ") == "ヷ・ヽ"


def test_escape_html_covers_exactly_five_characters() -> None:
    assert escape_html("&<>\"'") == "&amp;&lt;&gt;&quot;&#39;"
    assert escape_html("a/b=c;©") == "a/b=c;©"


def test_render_spans_escapes_readings() -> None:
    assert render_spans([AnnotatedSpan("x", "<y>")]) == "<ruby>x<rt>&lt;y&gt;</rt></ruby>"
