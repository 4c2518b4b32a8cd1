import math

import pytest

from armour.services.normalizer import normalize, normalize_risk, normalize_score


@pytest.mark.parametrize("value", [-1e9, -5, 0, 42, 99.5, 100, 250, 1e12, "73", "not a number", None, True])
def test_score_is_clamped_to_range(value):
    score = normalize({"protectionScore": value})["protectionScore"]
    assert 0 <= score <= 100


@pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, "NaN", "Infinity"])
def test_non_finite_scores_become_zero(value):
    assert normalize_score(value) == 0


def test_score_parsing():
    assert normalize_score("73") == 73
    assert normalize_score(150) == 100
    assert normalize_score(-3) == 0
    assert normalize_score(62.5) == 62.5


@pytest.mark.parametrize("raw, expected", [
    ("LOW risk", "low"),
    ("quite HIGH", "high"),
    ("", "medium"),
    ("moderate", "medium"),
    (None, "medium"),
    ("High", "high"),
    # "low" is checked first
    ("low to high", "low"),
])
def test_risk_mapping(raw, expected):
    assert normalize_risk(raw) == expected


def test_normalize_tolerates_non_dict_input():
    assert normalize(None) == {"protectionScore": 0, "overallRisk": "medium"}
