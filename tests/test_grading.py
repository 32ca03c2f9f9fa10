import math

import pytest

from models import SystemSettings
from services.grading import (
    ExamBucket, WeightedScore, aggregate_scores, calculate_gpa, classify_exam_type,
    get_aggregation_mode,
    classify_grade, compute_weighted_score, format_position, get_system_weights,
    ordinal_suffix, resolve_grading_config
)


@pytest.fixture
def config_40_60():
    return resolve_grading_config('standard', {'test_weight': 40, 'exam_weight': 60})


def test_weighted_score_both_components(config_40_60):
    result = compute_weighted_score(80, 100, 50, 100, config_40_60)
    assert result == WeightedScore(test_weighted=32.0, exam_weighted=30.0, weighted_score=62.0, percentage=62.0)


def test_weighted_score_missing_test(config_40_60):
    result = compute_weighted_score(None, None, 45, 50, config_40_60)
    assert result.test_weighted == 0
    assert result.exam_weighted == 54.0
    assert result.weighted_score == 54.0
    # graded over the exam's share only
    assert result.percentage == 90.0


def test_exam_only_weighted_score_is_capped_at_exam_weight(config_40_60):
    result = compute_weighted_score(None, None, 100, 100, config_40_60)
    assert result.weighted_score == 60.0
    assert result.percentage == 100.0


def test_test_only_percentage_uses_test_weight(config_40_60):
    result = compute_weighted_score(80, 100, None, None, config_40_60)
    assert result.weighted_score == 32.0
    assert result.percentage == 80.0
    assert classify_grade(result.percentage).grade == 'A'


def test_zero_max_component_does_not_count(config_40_60):
    result = compute_weighted_score(30, 0, 30, 60, config_40_60)
    assert result.weighted_score == 30.0
    assert result.percentage == 50.0


def test_weighted_score_degenerate_inputs(config_40_60):
    result = compute_weighted_score(30, 0, float('nan'), 100, config_40_60)
    assert result == WeightedScore(0.0, 0.0, 0.0, 0.0)
    assert all(math.isfinite(v) for v in (result.test_weighted, result.percentage))

    result = compute_weighted_score(float('inf'), 100, 10, None, config_40_60)
    assert result.weighted_score == 0.0


def test_percentage_uses_total_weight():
    config = resolve_grading_config('standard', {'test_weight': 30, 'exam_weight': 30})
    result = compute_weighted_score(50, 100, 100, 100, config)
    assert result.test_weighted == 15.0
    assert result.exam_weighted == 30.0
    assert result.weighted_score == 45.0
    assert result.percentage == 75.0


def test_zero_total_weight_gives_zero_percentage():
    config = resolve_grading_config('standard', {'test_weight': 0, 'exam_weight': 0})
    assert compute_weighted_score(10, 10, 10, 10, config).percentage == 0.0


def test_resolve_defaults_and_unknown_scale():
    config = resolve_grading_config('does-not-exist')
    assert config.scale_id == 'standard'
    assert (config.test_weight, config.exam_weight) == (40, 60)
    assert config.boundaries[-1].grade == 'F'
    assert config.aggregation_mode == 'last'


def test_resolve_ignores_bad_weights():
    config = resolve_grading_config('waec', {'test_weight': 'abc', 'exam_weight': -5})
    assert (config.test_weight, config.exam_weight) == (40, 60)
    assert config.boundaries[0].grade == 'A1'


@pytest.mark.parametrize('percentage,scale,grade', [
    (95, 'standard', 'A+'),
    (89.5, 'standard', 'A+'),
    (89.4, 'standard', 'A'),
    (62, 'standard', 'B'),
    (39.9, 'standard', 'D'),
    (0, 'standard', 'F'),
    (-20, 'standard', 'F'),
    (150, 'standard', 'A+'),
    (float('nan'), 'standard', 'F'),
    (None, 'standard', 'F'),
    (75, 'waec', 'A1'),
    (74, 'waec', 'B2'),
    (52, 'waec', 'C6'),
    (39, 'waec', 'F9'),
    (85, 'percentage', '80-89%'),
    (12, 'percentage', '0-39%'),
])
def test_classify_grade(percentage, scale, grade):
    assert classify_grade(percentage, scale).grade == grade


def test_classify_grade_remarks():
    boundary = classify_grade(62, 'standard')
    assert boundary.remarks == 'Satisfactory'
    assert boundary.points == 3.0


@pytest.mark.parametrize('raw,bucket', [
    ('test', ExamBucket.TEST),
    ('Quiz ', ExamBucket.TEST),
    ('assignment', ExamBucket.TEST),
    ('exam', ExamBucket.EXAM),
    ('FINAL', ExamBucket.EXAM),
    (' midterm', ExamBucket.EXAM),
    ('project', ExamBucket.TEST),
    (None, ExamBucket.TEST),
])
def test_classify_exam_type(raw, bucket):
    assert classify_exam_type(raw) is bucket


def test_calculate_gpa():
    assert calculate_gpa(['A+', 'B', 'unknown']) == 3.5
    assert calculate_gpa([]) == 0.0
    assert calculate_gpa(['A1', 'C6'], 'waec') == 3.5


@pytest.mark.parametrize('n,expected', [
    (1, '1st'), (2, '2nd'), (3, '3rd'), (4, '4th'), (11, '11th'), (12, '12th'),
    (13, '13th'), (21, '21st'), (22, '22nd'), (101, '101st'), (111, '111th'),
])
def test_format_position(n, expected):
    assert format_position(n) == expected


def test_ordinal_suffix_and_missing_position():
    assert ordinal_suffix(23) == 'rd'
    assert format_position(None) == ''


def test_aggregate_scores():
    values = [50, None, 70, 60]
    assert aggregate_scores(values, 'last') == 60
    assert aggregate_scores(values, 'best') == 70
    assert aggregate_scores(values, 'average') == 60.0
    assert aggregate_scores([None], 'best') is None
    assert aggregate_scores([]) is None


def test_system_weights_from_config(app):
    assert get_system_weights() == {'test_weight': 40, 'exam_weight': 60}


def test_system_weights_database_overrides_config(app):
    SystemSettings.set_setting('test_weight', '30')
    SystemSettings.set_setting('exam_weight', 'seventy')

    weights = get_system_weights()
    assert weights['test_weight'] == 30.0
    # non-numeric stored value falls back
    assert weights['exam_weight'] == 60


def test_aggregation_mode_setting(app, db):
    assert get_aggregation_mode() == 'last'

    SystemSettings.set_setting('score_aggregation_mode', 'Best')
    assert get_aggregation_mode() == 'best'

    SystemSettings.set_setting('score_aggregation_mode', 'median')
    assert get_aggregation_mode() == 'last'


def test_resolve_aggregation_mode():
    assert resolve_grading_config('standard', None, 'average').aggregation_mode == 'average'
    assert resolve_grading_config('standard', None, 'median').aggregation_mode == 'last'
