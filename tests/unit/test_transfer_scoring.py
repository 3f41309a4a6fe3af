"""Unit tests for transfer scoring."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledgerlink.services import transfer_scoring
from ledgerlink.services.transfer_candidates import TransferCandidate
from ledgerlink.services.transfer_scoring import (
    DEFAULT_CONFIG,
    DEFAULT_TRANSFER_KEYWORDS,
    description_similarity,
    has_transfer_keywords,
    load_detection_config,
    normalize_text,
    score_amount,
    score_candidate,
    score_candidates,
    score_date,
    score_description,
    weighted_total,
)


@pytest.fixture
def fresh_config_cache():
    transfer_scoring._config_cache = None
    yield
    transfer_scoring._config_cache = None


def _candidate(
    amount_diff: str = "0.00",
    date_diff_days: int = 0,
    debit_description: str = "ABC CORP",
    credit_description: str = "XYZ LTD",
) -> TransferCandidate:
    return TransferCandidate(
        from_transaction_id=uuid4(),
        to_transaction_id=uuid4(),
        amount_diff=Decimal(amount_diff),
        date_diff_days=date_diff_days,
        debit_description=debit_description,
        credit_description=credit_description,
    )


def _score(candidate: TransferCandidate) -> int:
    score, _ = score_candidate(
        candidate,
        DEFAULT_CONFIG,
        amount_tolerance=Decimal("0.50"),
        date_tolerance_days=3,
    )
    return score


class TestConfigLoading:
    def test_reads_yaml_defaults(self, fresh_config_cache, monkeypatch):
        monkeypatch.delenv("TRANSFER_AUTO_LINK_THRESHOLD", raising=False)
        monkeypatch.delenv("TRANSFER_DATE_TOLERANCE_DAYS", raising=False)

        config = load_detection_config(force_reload=True)

        assert config.auto_link_threshold == 95
        assert config.date_tolerance_days == 3
        assert config.amount_tolerance == Decimal("0.5")
        assert config.weight_amount + config.weight_date + config.weight_description == Decimal("1.00")
        assert "www tfr" in config.transfer_keywords

    def test_env_overrides(self, fresh_config_cache, monkeypatch):
        monkeypatch.setenv("TRANSFER_AUTO_LINK_THRESHOLD", "90")
        monkeypatch.setenv("TRANSFER_DATE_TOLERANCE_DAYS", "5")

        config = load_detection_config(force_reload=True)

        assert config.auto_link_threshold == 90
        assert config.date_tolerance_days == 5

    def test_cached_until_forced(self, fresh_config_cache, monkeypatch):
        monkeypatch.delenv("TRANSFER_AUTO_LINK_THRESHOLD", raising=False)
        first = load_detection_config()
        monkeypatch.setenv("TRANSFER_AUTO_LINK_THRESHOLD", "50")

        assert load_detection_config() is first
        assert load_detection_config(force_reload=True).auto_link_threshold == 50

    def test_malformed_yaml_falls_back_to_defaults(self, fresh_config_cache, monkeypatch, tmp_path):
        bad = tmp_path / "transfer_detection.yaml"
        bad.write_text("scoring: [unclosed")
        monkeypatch.setattr(transfer_scoring, "CONFIG_PATH", bad)
        monkeypatch.delenv("TRANSFER_AUTO_LINK_THRESHOLD", raising=False)
        monkeypatch.delenv("TRANSFER_DATE_TOLERANCE_DAYS", raising=False)

        assert load_detection_config(force_reload=True) == DEFAULT_CONFIG

    def test_bad_value_falls_back_to_defaults(self, fresh_config_cache, monkeypatch, tmp_path):
        bad = tmp_path / "transfer_detection.yaml"
        bad.write_text("scoring:\n  weights:\n    amount: lots\n")
        monkeypatch.setattr(transfer_scoring, "CONFIG_PATH", bad)
        monkeypatch.delenv("TRANSFER_AUTO_LINK_THRESHOLD", raising=False)
        monkeypatch.delenv("TRANSFER_DATE_TOLERANCE_DAYS", raising=False)

        assert load_detection_config(force_reload=True) == DEFAULT_CONFIG

    def test_missing_file_uses_defaults(self, fresh_config_cache, monkeypatch, tmp_path):
        monkeypatch.setattr(transfer_scoring, "CONFIG_PATH", tmp_path / "absent.yaml")
        monkeypatch.delenv("TRANSFER_AUTO_LINK_THRESHOLD", raising=False)
        monkeypatch.delenv("TRANSFER_DATE_TOLERANCE_DAYS", raising=False)

        assert load_detection_config(force_reload=True) == DEFAULT_CONFIG


class TestSignals:
    def test_normalize_text(self):
        assert normalize_text("  WWW-TFR  #1234 ") == "www tfr 1234"

    def test_amount_signal(self):
        tolerance = Decimal("0.50")
        assert score_amount(Decimal("0.00"), tolerance) == 100.0
        assert score_amount(Decimal("0.25"), tolerance) == 50.0
        assert score_amount(Decimal("-0.25"), tolerance) == 50.0
        assert score_amount(Decimal("0.50"), tolerance) == 0.0
        assert score_amount(Decimal("0.10"), Decimal("0")) == 0.0
        assert score_amount(Decimal("0.00"), Decimal("0")) == 100.0

    def test_date_signal(self):
        assert score_date(0, 3) == 100.0
        assert score_date(1, 3) == 66.67
        assert score_date(3, 3) == 0.0
        assert score_date(0, 0) == 100.0

    @pytest.mark.parametrize(
        "description,expected",
        [
            ("WWW TFR 000123", True),
            ("Interac e-Transfer to J SMITH", True),
            ("ONLINE BANKING TRANSFER", True),
            ("LOC PAYMENT", True),
            ("TRANSFERTASTIC COFFEE", False),
            ("PAYMENTECH CANADA", False),
            ("", False),
            (None, False),
        ],
    )
    def test_transfer_keywords_match_whole_words(self, description, expected):
        assert has_transfer_keywords(description, DEFAULT_TRANSFER_KEYWORDS) is expected

    def test_description_similarity(self):
        assert description_similarity("Savings Acct", "SAVINGS ACCT") == 100.0
        assert description_similarity("Savings", None) == 0.0
        assert description_similarity("***", "Savings") == 0.0

    def test_description_floor_without_keywords(self):
        signal, similarity, keyword_hit = score_description("ABC CORP", "XYZ LTD", DEFAULT_CONFIG)
        assert similarity < DEFAULT_CONFIG.description_floor
        assert signal == DEFAULT_CONFIG.description_floor
        assert keyword_hit is False

    def test_keyword_floor_on_either_side(self):
        signal, _, keyword_hit = score_description("ABC CORP", "WWW TFR 555", DEFAULT_CONFIG)
        assert keyword_hit is True
        assert signal == DEFAULT_CONFIG.keyword_floor

    def test_weighted_total_rounds_and_clamps(self):
        assert weighted_total({"amount": 100, "date": 100, "description": 100}, DEFAULT_CONFIG) == 100
        assert weighted_total({"amount": 0, "date": 0, "description": 0}, DEFAULT_CONFIG) == 0
        # 50 + 35 + 10.5 = 95.5, half-even rounds up to 96
        assert weighted_total({"amount": 100, "date": 100, "description": 70}, DEFAULT_CONFIG) == 96


class TestScoreCandidate:
    def test_exact_pair_clears_auto_link_threshold(self):
        score = _score(_candidate())
        assert score == 96
        assert score >= DEFAULT_CONFIG.auto_link_threshold

    def test_edge_of_tolerance_pair_needs_review(self):
        # -500.00 on Mar 1 against +499.60 on Mar 4
        assert _score(_candidate(amount_diff="0.40", date_diff_days=3)) == 20

    def test_keyword_lifts_description_signal(self):
        plain = _score(_candidate(amount_diff="0.40", date_diff_days=3))
        keyword = _score(_candidate(amount_diff="0.40", date_diff_days=3, credit_description="WWW TFR 000123"))
        assert keyword == 25
        assert keyword > plain

    def test_breakdown_contents(self):
        _, breakdown = score_candidate(
            _candidate(date_diff_days=1, credit_description="Transfer from chequing"),
            DEFAULT_CONFIG,
            amount_tolerance=Decimal("0.50"),
            date_tolerance_days=3,
        )
        assert breakdown["amount"] == 100.0
        assert breakdown["date"] == 66.67
        assert breakdown["description"] == 100.0
        assert breakdown["has_transfer_keywords"] is True
        assert "description_similarity" in breakdown

    def test_score_never_increases_as_amount_diff_grows(self):
        diffs = ["0.00", "0.05", "0.10", "0.20", "0.35", "0.49", "0.50"]
        scores = [_score(_candidate(amount_diff=diff)) for diff in diffs]
        assert scores == sorted(scores, reverse=True)

    def test_score_never_increases_as_date_diff_grows(self):
        scores = [_score(_candidate(date_diff_days=days)) for days in range(4)]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.parametrize(("amount_diff", "date_diff_days"), [("0.00", 0), ("0.40", 3)])
    def test_score_never_decreases_as_descriptions_converge(self, amount_diff, date_diff_days):
        pairs = [
            ("ACME CORP", "XYZ LTD"),
            ("ACME CORP INVOICE", "ACME CORP"),
            ("ACME CORP INVOICE 1001", "ACME CORP INVOICE 1002"),
            ("ACME CORP INVOICE 1001", "ACME CORP INVOICE 1001"),
        ]
        results = [
            score_candidate(
                _candidate(amount_diff, date_diff_days, debit_description=debit, credit_description=credit),
                DEFAULT_CONFIG,
                amount_tolerance=Decimal("0.50"),
                date_tolerance_days=3,
            )
            for debit, credit in pairs
        ]
        scores = [score for score, _ in results]
        signals = [breakdown["description"] for _, breakdown in results]
        similarities = [breakdown["description_similarity"] for _, breakdown in results]

        assert scores == sorted(scores)
        # The first two sit on the floor, the last two rise above it.
        assert similarities[0] < similarities[1] < DEFAULT_CONFIG.description_floor
        assert signals[:2] == [DEFAULT_CONFIG.description_floor] * 2
        assert DEFAULT_CONFIG.description_floor < signals[2] < signals[3] == 100.0
        assert scores[0] < scores[3]

    def test_scoring_is_deterministic(self):
        candidate = _candidate(amount_diff="0.13", date_diff_days=2, credit_description="Savings")
        assert {_score(candidate) for _ in range(5)} == {_score(candidate)}

    def test_score_candidates_fills_in_place(self):
        candidates = [_candidate(), _candidate(amount_diff="0.40", date_diff_days=3)]
        returned = score_candidates(
            candidates,
            DEFAULT_CONFIG,
            amount_tolerance=Decimal("0.50"),
            date_tolerance_days=3,
        )
        assert returned is candidates
        assert [c.score for c in candidates] == [96, 20]
        assert all(c.breakdown for c in candidates)
