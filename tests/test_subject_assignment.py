import pytest

from services.subject_assignment import (
    affected_student_ids, is_senior_secondary_level, normalize_department,
    subjects_for_class, subjects_for_student
)


def names(subjects):
    return {s.name for s in subjects}


@pytest.mark.parametrize('level,expected', [
    ('Senior Secondary', True),
    ('senior_secondary 2', True),
    ('SS2', True),
    ('ss 1', True),
    ('SSS3', True),
    (' sss 2 ', True),
    ('SS4', False),
    ('JSS2', False),
    ('Primary 5', False),
    ('', False),
    (None, False),
])
def test_is_senior_secondary_level(level, expected):
    assert is_senior_secondary_level(level) is expected


def test_normalize_department():
    assert normalize_department(' Science ') == 'science'
    assert normalize_department('   ') is None
    assert normalize_department(None) is None


def test_department_subjects_added_for_senior_class(school):
    cls = school['class']
    assert names(subjects_for_class(cls.id, 'science')) == {'Mathematics', 'English Language', 'Physics'}
    assert names(subjects_for_class(cls.id, ' SCIENCE ')) == {'Mathematics', 'English Language', 'Physics'}


def test_unmapped_department_gets_shared_subjects_only(school):
    assert names(subjects_for_class(school['class'].id, 'arts')) == {'Mathematics', 'English Language'}
    assert names(subjects_for_class(school['class'].id, None)) == {'Mathematics', 'English Language'}


def test_department_example_from_four_subjects(factory):
    cls = factory.school_class(level='Senior Secondary')
    for name in ('Math', 'English'):
        factory.map_subject(cls, factory.subject(name))
    for name in ('Physics', 'Chemistry'):
        factory.map_subject(cls, factory.subject(name), department='science')

    assert names(subjects_for_class(cls.id, 'science')) == {'Math', 'English', 'Physics', 'Chemistry'}
    assert names(subjects_for_class(cls.id, 'arts')) == {'Math', 'English'}


def test_mapping_department_is_matched_case_insensitively(factory):
    cls = factory.school_class(level='SS3')
    factory.map_subject(cls, factory.subject('Biology'), department=' Science')

    assert names(subjects_for_class(cls.id, 'science')) == {'Biology'}


def test_department_ignored_outside_senior_classes(factory):
    cls = factory.school_class(name='JSS 2B', level='Junior Secondary')
    factory.map_subject(cls, factory.subject('Basic Science'))
    factory.map_subject(cls, factory.subject('Physics'), department='science')

    assert names(subjects_for_class(cls.id, 'science')) == {'Basic Science'}


def test_senior_level_read_from_class_name(factory):
    cls = factory.school_class(name='SS1', level=None)
    factory.map_subject(cls, factory.subject('Chemistry'), department='science')

    assert names(subjects_for_class(cls.id, 'science')) == {'Chemistry'}


def test_inactive_subjects_are_left_out(factory):
    cls = factory.school_class()
    factory.map_subject(cls, factory.subject('Latin', is_active=False))
    factory.map_subject(cls, factory.subject('History'))

    assert names(subjects_for_class(cls.id)) == {'History'}


def test_no_mappings_means_no_subjects(factory):
    cls = factory.school_class()
    factory.subject('Mathematics')

    assert subjects_for_class(cls.id, 'science') == []
    assert subjects_for_class(9999) == []


def test_subjects_are_ordered_by_name(school):
    assert [s.name for s in subjects_for_class(school['class'].id, 'science')] == [
        'English Language', 'Mathematics', 'Physics'
    ]


def test_student_falls_back_to_class_mappings(school):
    student = school['science_student']
    assert names(subjects_for_student(student.id)) == {'Mathematics', 'English Language', 'Physics'}
    assert names(subjects_for_student(school['arts_student'].id)) == {'Mathematics', 'English Language'}


def test_student_assignments_take_precedence(school, factory):
    student = school['science_student']
    cls = school['class']
    term = school['term']
    music = factory.subject('Music')
    factory.assign_subject(student, cls, music)
    factory.assign_subject(student, cls, school['math'], term=term)

    assert names(subjects_for_student(student.id, cls.id, term.id)) == {'Music', 'Mathematics'}


def test_assignments_for_other_terms_or_inactive_are_ignored(school, factory):
    student = school['science_student']
    cls = school['class']
    other_term = factory.term(name='Second Term', is_current=False)
    factory.assign_subject(student, cls, factory.subject('Music'), term=other_term)
    factory.assign_subject(student, cls, factory.subject('Drama'), is_active=False)

    resolved = subjects_for_student(student.id, cls.id, school['term'].id)
    assert names(resolved) == {'Mathematics', 'English Language', 'Physics'}


def test_unknown_student_resolves_to_nothing(app):
    assert subjects_for_student(424242) == []


def test_affected_student_ids(school):
    cls = school['class']
    science = school['science_student']
    arts = school['arts_student']

    assert set(affected_student_ids(cls.id)) == {science.id, arts.id}
    assert affected_student_ids(cls.id, 'SCIENCE') == [science.id]
    assert affected_student_ids(cls.id, 'commercial') == []
