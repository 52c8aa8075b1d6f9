"""
Tests for anchor reconciliation (llm/reconciler.py).

Validates:
- context / quote / numeric-range / default resolution order
- NFKC and line-ending normalization mapped back to original offsets
- grapheme clusters never split
- extract -> resolve round-trip returns the exact offsets
"""

import pytest

from kousei.llm.reconciler import (
    STRATEGY_CONTEXT,
    STRATEGY_DEFAULT,
    STRATEGY_QUOTE,
    STRATEGY_RAW_RANGE,
    AnchorSpec,
    clamp_range,
    extract_anchor,
    iter_clusters,
    normalize_with_index_map,
    resolve_anchor,
)


def span(resolved):
    return resolved.start, resolved.end


# ---------------------------------------------------------------------------
# Resolution order
# ---------------------------------------------------------------------------

class TestResolution:
    def test_context_match(self):
        text = "コンピュータの表記"
        resolved = resolve_anchor(text, AnchorSpec(quote="コンピュータ", before="", after="の", nth=1))
        assert span(resolved) == (0, 6)
        assert text[resolved.start:resolved.end] == "コンピュータ"
        assert resolved.strategy == STRATEGY_CONTEXT
        assert not resolved.low_confidence

    def test_context_disambiguates_repeated_quote(self):
        text = "晴れの日。雨の日。晴れの朝。"
        resolved = resolve_anchor(text, AnchorSpec(quote="晴れ", after="の朝"))
        assert span(resolved) == (9, 11)

    def test_falls_back_to_quote_when_context_is_wrong(self):
        resolved = resolve_anchor("サーバの設定", AnchorSpec(quote="サーバ", before="存在しない"))
        assert span(resolved) == (0, 3)
        assert resolved.strategy == STRATEGY_QUOTE

    def test_nth_occurrence(self):
        resolved = resolve_anchor("あいあいあい", AnchorSpec(quote="あい", nth=2))
        assert span(resolved) == (2, 4)

    def test_nth_counts_overlapping_occurrences(self):
        resolved = resolve_anchor("ああああ", AnchorSpec(quote="ああ", nth=2))
        assert span(resolved) == (1, 3)

    def test_numeric_range_is_lowest_trust(self):
        resolved = resolve_anchor("本文です", AnchorSpec(quote="見つからない", range=(1, 3)))
        assert span(resolved) == (1, 3)
        assert resolved.strategy == STRATEGY_RAW_RANGE
        assert resolved.low_confidence

    def test_numeric_range_is_clamped(self):
        resolved = resolve_anchor("本文です", AnchorSpec(range=(2, 99)))
        assert span(resolved) == (2, 4)

    def test_default_range(self):
        resolved = resolve_anchor("本文です", AnchorSpec(quote="見つからない"))
        assert span(resolved) == (0, 1)
        assert resolved.strategy == STRATEGY_DEFAULT
        assert resolved.low_confidence

    def test_empty_text(self):
        assert span(resolve_anchor("", AnchorSpec(quote="x"))) == (0, 0)

    @pytest.mark.parametrize("start,end,length,expected", [
        (-5, 2, 10, (0, 2)),
        (3, 3, 10, (3, 4)),
        (12, 20, 10, (9, 10)),
        (0, 1, 0, (0, 0)),
    ])
    def test_clamp(self, start, end, length, expected):
        assert clamp_range(start, end, length) == expected

    def test_from_payload_ignores_bad_values(self):
        anchor = AnchorSpec.from_payload({"quote": "a", "nth": 0, "range": {"start": "1", "end": 2}})
        assert anchor.nth == 1
        assert anchor.range is None


# ---------------------------------------------------------------------------
# Normalization and index mapping
# ---------------------------------------------------------------------------

class TestNormalization:
    def test_fullwidth_alphanumerics(self):
        text = "型番はＡＢＣ１２３です"
        resolved = resolve_anchor(text, AnchorSpec(quote="ABC123", before="型番は"))
        assert text[resolved.start:resolved.end] == "ＡＢＣ１２３"

    def test_halfwidth_katakana_with_sound_mark(self):
        text = "ｺﾝﾋﾟｭｰﾀの設定"
        resolved = resolve_anchor(text, AnchorSpec(quote="コンピュータ", after="の"))
        assert span(resolved) == (0, 7)

    def test_crlf(self):
        text = "一行目\r\n二行目です"
        resolved = resolve_anchor(text, AnchorSpec(quote="二行目", before="一行目\n"))
        assert span(resolved) == (5, 8)
        assert resolved.strategy == STRATEGY_CONTEXT

    def test_combining_mark_stays_with_its_base(self):
        text = "cafe\u0301 au lait"
        resolved = resolve_anchor(text, AnchorSpec(quote="caf\u00e9"))
        assert span(resolved) == (0, 5)

    def test_index_map_sentinel(self):
        imap = normalize_with_index_map("ｶﾞ\r\nA")
        assert imap.normalized == "ガ\nA"
        assert imap.start_map[-1] == imap.end_map[-1] == 5
        assert imap.to_original(0, 1) == (0, 2)
        assert imap.to_original(1, 2) == (2, 4)

    def test_clusters(self):
        assert list(iter_clusters("\U0001F1EF\U0001F1F5a")) == [(0, 2), (2, 3)]
        assert list(iter_clusters("\U0001F468\u200d\U0001F469")) == [(0, 3)]
        assert list(iter_clusters("e\u0301", grapheme_aware=False)) == [(0, 1), (1, 2)]
        assert list(iter_clusters("\r\n", grapheme_aware=False)) == [(0, 2)]

    def test_reused_index_map(self):
        text = "サーバとサーバー"
        imap = normalize_with_index_map(text)
        resolved = resolve_anchor(text, AnchorSpec(quote="サーバ", nth=2), imap)
        assert span(resolved) == (4, 7)


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

class TestRoundTrip:
    TEXT = "今日は晴れ。今日は雨。今日は晴れ。明日も晴れ。"

    @pytest.mark.parametrize("context_chars", [0, 2, 40])
    def test_every_short_span(self, context_chars):
        text = self.TEXT
        for start in range(len(text)):
            for end in range(start + 1, min(start + 4, len(text)) + 1):
                anchor = extract_anchor(text, start, end, context_chars=context_chars)
                resolved = resolve_anchor(text, anchor)
                assert span(resolved) == (start, end), (start, end, anchor)

    def test_nth_is_reported_for_repeated_context(self):
        anchor = extract_anchor(self.TEXT, 14, 16, context_chars=1)
        assert anchor.quote == "晴れ"
        assert anchor.nth == 2

    @pytest.mark.parametrize("text,start,end", [
        ("Xあｶﾞあ", 4, 5),
        ("あﾊﾟあﾊﾞ", 3, 4),
        ("あe\u0301あe\u0300", 3, 4),
    ])
    def test_context_window_keeps_whole_clusters(self, text, start, end):
        anchor = extract_anchor(text, start, end, context_chars=1)
        assert span(resolve_anchor(text, anchor)) == (start, end)

    def test_round_trip_through_normalized_text(self):
        text = "ＡＢＣとABCとＡＢＣ"
        anchor = extract_anchor(text, 8, 11, context_chars=1)
        assert span(resolve_anchor(text, anchor)) == (8, 11)
