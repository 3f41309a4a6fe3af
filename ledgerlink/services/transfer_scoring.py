"""Confidence scoring for transfer candidates."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from decimal import Decimal
from difflib import SequenceMatcher
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from ledgerlink.logger import get_logger

if TYPE_CHECKING:
    from ledgerlink.services.transfer_candidates import TransferCandidate

logger = get_logger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "transfer_detection.yaml"


@dataclass(frozen=True)
class DetectionConfig:
    """Scoring weights, thresholds and default tolerances."""

    weight_amount: Decimal
    weight_date: Decimal
    weight_description: Decimal
    auto_link_threshold: int
    amount_tolerance: Decimal
    date_tolerance_days: int
    description_floor: float
    keyword_floor: float
    transfer_keywords: tuple[str, ...]


DEFAULT_TRANSFER_KEYWORDS = (
    "transfer",
    "tfr",
    "br to br",
    "online banking",
    "e-transfer",
    "etransfer",
    "interac",
    "payment",
    "wire",
    "loan",
    "loc",
    "withdrawal",
    "deposit",
    "line of credit",
    "www tfr",
)

DEFAULT_CONFIG = DetectionConfig(
    weight_amount=Decimal("0.50"),
    weight_date=Decimal("0.35"),
    weight_description=Decimal("0.15"),
    auto_link_threshold=95,
    amount_tolerance=Decimal("0.50"),
    date_tolerance_days=3,
    description_floor=70.0,
    keyword_floor=100.0,
    transfer_keywords=DEFAULT_TRANSFER_KEYWORDS,
)

_config_cache: DetectionConfig | None = None


def load_detection_config(force_reload: bool = False) -> DetectionConfig:
    """Load scoring configuration from YAML, then apply environment overrides.

    Caches the result to avoid repeated disk I/O.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG

    if CONFIG_PATH.exists():
        try:
            raw = yaml.safe_load(CONFIG_PATH.read_text()) or {}
            scoring = raw.get("scoring", {})
            weights = scoring.get("weights", {})
            thresholds = scoring.get("thresholds", {})
            tolerances = scoring.get("tolerances", {})
            description = raw.get("description", {})
            keywords = description.get("transfer_keywords") or config.transfer_keywords

            config = DetectionConfig(
                weight_amount=Decimal(str(weights.get("amount", config.weight_amount))),
                weight_date=Decimal(str(weights.get("date", config.weight_date))),
                weight_description=Decimal(str(weights.get("description", config.weight_description))),
                auto_link_threshold=int(thresholds.get("auto_link", config.auto_link_threshold)),
                amount_tolerance=Decimal(str(tolerances.get("amount", config.amount_tolerance))),
                date_tolerance_days=int(tolerances.get("date_days", config.date_tolerance_days)),
                description_floor=float(description.get("floor", config.description_floor)),
                keyword_floor=float(description.get("keyword_floor", config.keyword_floor)),
                transfer_keywords=tuple(str(kw) for kw in keywords),
            )
        except (yaml.YAMLError, ValueError, TypeError, ArithmeticError, AttributeError) as e:
            logger.warning(
                "Failed to load transfer detection config - using defaults",
                config_path=str(CONFIG_PATH),
                error=str(e),
                error_type=type(e).__name__,
            )

    threshold_env = os.getenv("TRANSFER_AUTO_LINK_THRESHOLD")
    date_days_env = os.getenv("TRANSFER_DATE_TOLERANCE_DAYS")
    if threshold_env:
        config = replace(config, auto_link_threshold=int(threshold_env))
    if date_days_env:
        config = replace(config, date_tolerance_days=int(date_days_env))

    _config_cache = config
    return config


def normalize_text(value: str) -> str:
    """Lowercase and collapse anything that is not a letter or digit to single spaces."""
    cleaned = re.sub(r"[^a-z0-9]+", " ", value.lower()).strip()
    return re.sub(r"\s+", " ", cleaned)


def description_similarity(a: str | None, b: str | None) -> float:
    """Score description similarity (0-100): 60% sequence ratio, 40% token Jaccard."""
    if not a or not b:
        return 0.0
    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if not norm_a or not norm_b:
        return 0.0
    ratio = SequenceMatcher(None, norm_a, norm_b).ratio()
    tokens_a = set(norm_a.split())
    tokens_b = set(norm_b.split())
    token_score = len(tokens_a & tokens_b) / len(tokens_a | tokens_b) if tokens_a | tokens_b else 0
    return round(100 * (0.6 * ratio + 0.4 * token_score), 2)


def has_transfer_keywords(description: str | None, keywords: tuple[str, ...]) -> bool:
    """True when a transfer keyword appears as whole words in the description."""
    if not description:
        return False
    padded = f" {normalize_text(description)} "
    for keyword in keywords:
        norm_kw = normalize_text(keyword)
        if norm_kw and f" {norm_kw} " in padded:
            return True
    return False


def _linear_score(diff: Decimal, tolerance: Decimal) -> float:
    # 100 at zero difference, falling linearly to 0 at the tolerance.
    if diff <= 0:
        return 100.0
    if tolerance <= 0 or diff >= tolerance:
        return 0.0
    return float(round(Decimal("100") * (1 - diff / tolerance), 2))


def score_amount(amount_diff: Decimal, tolerance: Decimal) -> float:
    """Score amount exactness (0-100)."""
    return _linear_score(abs(amount_diff), tolerance)


def score_date(date_diff_days: int, tolerance_days: int) -> float:
    """Score date proximity (0-100)."""
    return _linear_score(Decimal(abs(date_diff_days)), Decimal(tolerance_days))


def score_description(
    debit_description: str | None,
    credit_description: str | None,
    config: DetectionConfig,
) -> tuple[float, float, bool]:
    """Return (signal, raw similarity, keyword hit) for the description pair.

    Unrelated wording on the two statements is normal for a transfer, so the
    signal never drops below ``description_floor``, or ``keyword_floor`` when
    either side carries a transfer keyword.
    """
    similarity = description_similarity(debit_description, credit_description)
    keyword_hit = has_transfer_keywords(
        debit_description, config.transfer_keywords
    ) or has_transfer_keywords(credit_description, config.transfer_keywords)
    floor = config.keyword_floor if keyword_hit else config.description_floor
    signal = max(similarity, floor)
    return signal, similarity, keyword_hit


def weighted_total(scores: dict[str, float], config: DetectionConfig) -> int:
    """Compute weighted total score."""
    total = (
        Decimal(str(scores["amount"])) * config.weight_amount
        + Decimal(str(scores["date"])) * config.weight_date
        + Decimal(str(scores["description"])) * config.weight_description
    )
    return max(0, min(100, int(round(total, 0))))


def score_candidate(
    candidate: TransferCandidate,
    config: DetectionConfig,
    *,
    amount_tolerance: Decimal,
    date_tolerance_days: int,
) -> tuple[int, dict[str, Any]]:
    """Score one candidate pair. Pure and deterministic."""
    description, similarity, keyword_hit = score_description(
        candidate.debit_description, candidate.credit_description, config
    )
    scores = {
        "amount": score_amount(candidate.amount_diff, amount_tolerance),
        "date": score_date(candidate.date_diff_days, date_tolerance_days),
        "description": description,
    }
    breakdown: dict[str, Any] = {
        **scores,
        "description_similarity": similarity,
        "has_transfer_keywords": keyword_hit,
    }
    return weighted_total(scores, config), breakdown


def score_candidates(
    candidates: list[TransferCandidate],
    config: DetectionConfig,
    *,
    amount_tolerance: Decimal,
    date_tolerance_days: int,
) -> list[TransferCandidate]:
    """Fill in ``score`` and ``breakdown`` on each candidate and return the list."""
    for candidate in candidates:
        candidate.score, candidate.breakdown = score_candidate(
            candidate,
            config,
            amount_tolerance=amount_tolerance,
            date_tolerance_days=date_tolerance_days,
        )
    return candidates
