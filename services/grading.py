"""
services/grading.py - Grading scales, weighting and grade classification

Pure computation: nothing in this module touches the database except
get_system_weights() and get_aggregation_mode(), which read the
configured settings.
None of these functions raise on bad numbers; degenerate inputs become 0.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 'standard'
DEFAULT_TEST_WEIGHT = 40
DEFAULT_EXAM_WEIGHT = 60
DEFAULT_AGGREGATION_MODE = 'last'

AGGREGATION_MODES = ('last', 'best', 'average')


@dataclass(frozen=True)
class GradeBoundary:
    min_percent: float
    grade: str
    remarks: str
    points: float = 0.0


@dataclass(frozen=True)
class GradingConfig:
    scale_id: str
    test_weight: float
    exam_weight: float
    boundaries: Tuple[GradeBoundary, ...]
    aggregation_mode: str = 'last'

    @property
    def total_weight(self):
        return self.test_weight + self.exam_weight


@dataclass(frozen=True)
class WeightedScore:
    test_weighted: float
    exam_weighted: float
    weighted_score: float
    percentage: float


# Boundaries are listed highest first; the last entry is the catch-all.
GRADING_SCALES = {
    'standard': (
        GradeBoundary(90, 'A+', 'Excellent', 4.0),
        GradeBoundary(80, 'A', 'Very Good', 3.7),
        GradeBoundary(70, 'B+', 'Good', 3.3),
        GradeBoundary(60, 'B', 'Satisfactory', 3.0),
        GradeBoundary(50, 'C', 'Pass', 2.0),
        GradeBoundary(40, 'D', 'Below Average', 1.0),
        GradeBoundary(0, 'F', 'Fail', 0.0),
    ),
    # WAEC points run the other way: A1 is best at 1.0
    'waec': (
        GradeBoundary(75, 'A1', 'Excellent', 1.0),
        GradeBoundary(70, 'B2', 'Very Good', 2.0),
        GradeBoundary(65, 'B3', 'Good', 3.0),
        GradeBoundary(60, 'C4', 'Credit', 4.0),
        GradeBoundary(55, 'C5', 'Credit', 5.0),
        GradeBoundary(50, 'C6', 'Credit', 6.0),
        GradeBoundary(45, 'D7', 'Pass', 7.0),
        GradeBoundary(40, 'E8', 'Pass', 8.0),
        GradeBoundary(0, 'F9', 'Fail', 9.0),
    ),
    'percentage': (
        GradeBoundary(90, '90-100%', 'Outstanding', 4.0),
        GradeBoundary(80, '80-89%', 'Excellent', 3.5),
        GradeBoundary(70, '70-79%', 'Very Good', 3.0),
        GradeBoundary(60, '60-69%', 'Good', 2.5),
        GradeBoundary(50, '50-59%', 'Fair', 2.0),
        GradeBoundary(40, '40-49%', 'Pass', 1.5),
        GradeBoundary(0, '0-39%', 'Fail', 0.0),
    ),
}


class ExamBucket(enum.Enum):
    """Which half of the weighting an exam contributes to"""
    TEST = 'test'
    EXAM = 'exam'


TEST_BUCKET_TYPES = frozenset(['test', 'quiz', 'assignment'])
EXAM_BUCKET_TYPES = frozenset(['exam', 'final', 'midterm'])


def classify_exam_type(exam_type):
    """
    Map a raw exam type string to its bucket.
    Unknown or missing types count as continuous assessment.
    """
    normalized = (exam_type or '').strip().lower()
    if normalized in EXAM_BUCKET_TYPES:
        return ExamBucket.EXAM
    if normalized not in TEST_BUCKET_TYPES:
        logger.debug("Unknown exam type %r treated as test bucket", exam_type)
    return ExamBucket.TEST


def to_finite(value, default=0.0):
    """Coerce anything to a finite float (None, NaN, inf and junk become default)"""
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def round_half_up(value, digits=0):
    """Round like a report card does: .5 always goes up"""
    factor = 10 ** digits
    return math.floor(to_finite(value) * factor + 0.5) / factor


def _parse_weight(raw, fallback):
    if raw is None or raw == '':
        return fallback
    try:
        weight = float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric weight setting %r", raw)
        return fallback
    if not math.isfinite(weight) or weight < 0:
        logger.warning("Ignoring invalid weight setting %r", raw)
        return fallback
    return weight


def get_system_weights():
    """
    Get the school-wide test/exam weights
    Priority: Database (SystemSettings) > Config > 40/60
    Must be called inside an app context.
    """
    from config import Config

    test_raw = Config.get_setting('test_weight', 'DEFAULT_TEST_WEIGHT', DEFAULT_TEST_WEIGHT)
    exam_raw = Config.get_setting('exam_weight', 'DEFAULT_EXAM_WEIGHT', DEFAULT_EXAM_WEIGHT)

    return {
        'test_weight': _parse_weight(test_raw, DEFAULT_TEST_WEIGHT),
        'exam_weight': _parse_weight(exam_raw, DEFAULT_EXAM_WEIGHT),
    }


def get_aggregation_mode():
    """Priority: Database (SystemSettings) > Config > 'last'"""
    from config import Config

    raw = Config.get_setting('score_aggregation_mode', 'SCORE_AGGREGATION_MODE', DEFAULT_AGGREGATION_MODE)
    mode = str(raw or '').strip().lower()
    if mode not in AGGREGATION_MODES:
        logger.warning("Unknown score aggregation mode %r, using %s", raw, DEFAULT_AGGREGATION_MODE)
        return DEFAULT_AGGREGATION_MODE
    return mode


def resolve_grading_config(scale_id, system_weights=None, aggregation_mode=None):
    """
    Build the GradingConfig for a scale.

    Args:
        scale_id: 'standard', 'waec' or 'percentage'; anything else falls back to standard
        system_weights: optional dict with 'test_weight' / 'exam_weight'
        aggregation_mode: 'last', 'best' or 'average' (default 'last')
    """
    key = (scale_id or '').strip().lower()
    if key not in GRADING_SCALES:
        if scale_id:
            logger.warning("Unknown grading scale %r, using %s", scale_id, DEFAULT_SCALE)
        key = DEFAULT_SCALE

    weights = system_weights or {}
    test_weight = _parse_weight(weights.get('test_weight'), DEFAULT_TEST_WEIGHT)
    exam_weight = _parse_weight(weights.get('exam_weight'), DEFAULT_EXAM_WEIGHT)

    return GradingConfig(
        scale_id=key,
        test_weight=test_weight,
        exam_weight=exam_weight,
        boundaries=GRADING_SCALES[key],
        aggregation_mode=aggregation_mode if aggregation_mode in AGGREGATION_MODES else DEFAULT_AGGREGATION_MODE,
    )


def _component(score, max_score, weight):
    """Returns (weighted contribution, weight it counts for)"""
    if score is None or max_score is None:
        return 0.0, 0.0
    score = to_finite(score)
    max_score = to_finite(max_score)
    if max_score <= 0:
        return 0.0, 0.0
    return to_finite(score / max_score * weight), to_finite(weight)


def compute_weighted_score(test_score, test_max, exam_score, exam_max, config):
    """
    Combine test and exam scores into a weighted score.

    Missing components contribute 0 to weighted_score, so an exam-only
    student's weighted_score tops out at the exam weight. The percentage
    (and so the grade) is taken over the weight of the components that
    are present: an exam-only 45/50 is 90%.
    """
    test_weighted, test_weight = _component(test_score, test_max, config.test_weight)
    exam_weighted, exam_weight = _component(exam_score, exam_max, config.exam_weight)
    weighted_score = test_weighted + exam_weighted

    total_weight = test_weight + exam_weight
    if total_weight > 0:
        percentage = to_finite(weighted_score / total_weight * 100)
    else:
        percentage = 0.0

    return WeightedScore(
        test_weighted=round_half_up(test_weighted, 1),
        exam_weighted=round_half_up(exam_weighted, 1),
        weighted_score=round_half_up(weighted_score, 1),
        percentage=round_half_up(percentage, 1),
    )


def classify_grade(percentage, scale_id=DEFAULT_SCALE):
    """
    Return the GradeBoundary for a percentage on the given scale.
    Percentage is clamped to 0-100 and rounded to a whole number first.
    """
    boundaries = resolve_grading_config(scale_id).boundaries
    value = round_half_up(max(0.0, min(100.0, to_finite(percentage))))

    for boundary in boundaries:
        if value >= boundary.min_percent:
            return boundary
    return boundaries[-1]


def calculate_gpa(grades, scale_id=DEFAULT_SCALE):
    """Average grade points of the given grade letters (unknown letters skipped)"""
    boundaries = resolve_grading_config(scale_id).boundaries
    points = {b.grade: b.points for b in boundaries}

    matched = [points[g] for g in grades if g in points]
    if not matched:
        return 0.0
    return round_half_up(sum(matched) / len(matched), 2)


def ordinal_suffix(n):
    """1 -> 'st', 2 -> 'nd', 11 -> 'th', 23 -> 'rd'"""
    n = int(n)
    if 10 <= n % 100 <= 20:
        return 'th'
    return {1: 'st', 2: 'nd', 3: 'rd'}.get(n % 10, 'th')


def format_position(position):
    if position is None:
        return ''
    return f"{position}{ordinal_suffix(position)}"


def aggregate_scores(values: List[Optional[float]], mode: str = 'last') -> Optional[float]:
    """
    Collapse several results for one bucket into a single score.

    Args:
        values: scores in the order they were recorded (None entries ignored)
        mode: 'last', 'best' or 'average'
    """
    present = [to_finite(v) for v in values if v is not None]
    if not present:
        return None

    if mode == 'best':
        return max(present)
    if mode == 'average':
        return round_half_up(sum(present) / len(present), 1)
    return present[-1]
