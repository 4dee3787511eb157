import math

import pytest

from form106_extractor.candidate_generator import (
    GROSS_INCOME,
    TAX_YEAR,
    CandidateGenerator,
    find_id_candidates,
    find_money_candidates,
    find_year_candidates,
)
from form106_extractor.scorer_validator import (
    FieldCandidate,
    ScorerValidator,
    is_valid_israeli_id,
    is_valid_money,
    is_valid_tax_year,
    max_tax_year,
    parse_israeli_id,
    parse_money,
    parse_year,
    proximity_score,
)


@pytest.mark.parametrize("value", ["123456782", "987654324", "031394828", "039337423"])
def test_valid_ids(value):
    assert is_valid_israeli_id(value)


@pytest.mark.parametrize("value", ["123456789", "111111111", "12345678a", "1234567890"])
def test_invalid_ids(value):
    assert not is_valid_israeli_id(value)


def test_parse_israeli_id():
    assert parse_israeli_id("39337423") == "039337423"
    assert parse_israeli_id("123-456-782") == "123456782"
    assert parse_israeli_id("123456789") is None
    assert parse_israeli_id("1234567890") is None
    assert parse_israeli_id("") is None


def test_tax_year_range():
    assert parse_year("Tax Year: 2024") == 2024
    assert parse_year("2009") is None
    assert parse_year("abc") is None
    assert is_valid_tax_year(2010)
    assert is_valid_tax_year(max_tax_year())
    assert not is_valid_tax_year(max_tax_year() + 1)
    assert not is_valid_tax_year(True)


def test_parse_money():
    assert parse_money("1234") == 1234.0
    assert parse_money("1,234") == 1234.0
    assert parse_money("1,234,567") == 1234567.0
    assert parse_money("1,234.56") == 1234.56
    assert parse_money("-100") is None
    assert parse_money("abc") is None
    assert parse_money("") is None
    assert parse_money("9" * 400) is None


def test_money_must_be_finite_and_non_negative():
    assert is_valid_money(0)
    assert not is_valid_money(-0.01)
    assert not is_valid_money(math.nan)
    assert not is_valid_money(math.inf)
    assert not is_valid_money(False)


def test_proximity_score():
    assert proximity_score(0, 10, 10) == 1.0
    assert proximity_score(0, 10, 110) == 0.5
    assert proximity_score(100, 5, 50) == pytest.approx(0.375)
    assert proximity_score(0, 10, 211) == 0.0
    # inside the anchor itself, e.g. "42" in "Box 42"
    assert proximity_score(100, 8, 104) == 0.0


def test_scoring_drops_out_of_range_candidates():
    candidates = [FieldCandidate(value=1.0, position=12), FieldCandidate(value=2.0, position=500)]
    scored = ScorerValidator().score_candidates(candidates, anchor_pos=0, anchor_len=10)
    assert [c.value for c in scored] == [1.0]
    assert scored[0].confidence == pytest.approx(0.99)


def test_best_candidate_breaks_ties_by_position():
    scorer = ScorerValidator()
    scored = [
        FieldCandidate(value="b", position=40, confidence=0.8),
        FieldCandidate(value="a", position=20, confidence=0.8),
        FieldCandidate(value="c", position=5, confidence=0.3),
    ]
    assert scorer.select_best_candidate(scored).value == "a"
    assert scorer.select_best_candidate([]) is None


def test_ambiguity_only_for_weak_winners():
    scorer = ScorerValidator()
    weak = FieldCandidate(value=1, position=0, confidence=0.6)
    close = FieldCandidate(value=2, position=10, confidence=0.5)
    far = FieldCandidate(value=3, position=20, confidence=0.3)
    strong = FieldCandidate(value=4, position=30, confidence=0.9)

    assert scorer.is_ambiguous(weak, [weak, close])
    assert not scorer.is_ambiguous(weak, [weak, far])
    assert not scorer.is_ambiguous(strong, [strong, FieldCandidate(value=5, position=40, confidence=0.85)])


def test_candidate_repr_hides_value():
    assert "123456782" not in repr(FieldCandidate(value="123456782", position=3))


def test_id_candidates_pass_checksum():
    candidates = find_id_candidates("ID 123456782 and 123456789 and 39337423")
    assert [c.value for c in candidates] == ["123456782", "039337423"]
    assert candidates[0].position == 3


def test_year_candidates_in_range():
    assert [c.value for c in find_year_candidates("2009 2015 2099")] == [2015]


def test_money_candidates():
    candidates = find_money_candidates("Total 1,234.56 and 789")
    assert [c.value for c in candidates] == [1234.56, 789.0]
    assert [c.token for c in candidates] == ["1,234.56", "789"]


def test_hebrew_and_box_anchors():
    generator = CandidateGenerator()
    assert generator.find_anchor("שנת מס 2023", TAX_YEAR) == (0, 6)
    assert generator.find_anchor("abc משבצת 42 180,000", GROSS_INCOME) == (4, 8)
    assert generator.find_anchor("Gross Income 1,000", GROSS_INCOME) == (0, 12)
    assert generator.find_anchor("nothing here", GROSS_INCOME) is None
