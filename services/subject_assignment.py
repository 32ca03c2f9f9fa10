"""
services/subject_assignment.py - Which subjects does a student take?

Single source of truth for report card subjects:
1. Active per-student assignments for the class win outright
2. Otherwise class mappings: department=NULL rows apply to everyone,
   department rows only to senior-secondary students in that department
3. No mappings means no subjects (the admin hasn't configured the class yet)
"""

import logging
import re

from sqlalchemy import func, or_

from extensions import db
from models import Class, ClassSubjectMapping, Student, StudentSubjectAssignment, Subject

logger = logging.getLogger(__name__)

_SENIOR_SHORT_FORMS = (
    re.compile(r'^ss\s*[123]$', re.IGNORECASE),
    re.compile(r'^sss\s*[123]$', re.IGNORECASE),
)


def normalize_department(department):
    """Trim and lowercase a department; blank becomes None"""
    normalized = (department or '').strip().lower()
    return normalized or None


def is_senior_secondary_level(level):
    """
    True for "Senior Secondary", "senior_secondary", "SS2", "SSS 1" and friends
    """
    if not level:
        return False
    normalized = level.strip().lower()
    if 'senior secondary' in normalized or 'senior_secondary' in normalized:
        return True
    return any(pattern.match(normalized) for pattern in _SENIOR_SHORT_FORMS)


def _class_is_senior(cls):
    # Some schools only encode the level in the class name ("SS2")
    return is_senior_secondary_level(cls.level) or is_senior_secondary_level(cls.name)


def subjects_for_class(class_id, department=None):
    """
    Get the mapped subjects for a class and optional department.

    Department only matters for senior-secondary classes. Inactive subjects
    are left out. Returns [] when the class or its mappings don't exist.
    """
    cls = db.session.get(Class, class_id)
    if cls is None:
        logger.warning("subjects_for_class: class %s not found", class_id)
        return []

    dept = normalize_department(department)

    query = db.session.query(Subject).join(
        ClassSubjectMapping, ClassSubjectMapping.subject_id == Subject.id
    ).filter(
        ClassSubjectMapping.class_id == class_id,
        Subject.is_active.is_(True)
    )

    if dept and _class_is_senior(cls):
        query = query.filter(or_(
            ClassSubjectMapping.department.is_(None),
            func.lower(func.trim(ClassSubjectMapping.department)) == dept
        ))
    else:
        query = query.filter(ClassSubjectMapping.department.is_(None))

    subjects = query.distinct().order_by(Subject.name, Subject.id).all()

    if not subjects:
        logger.info("No subjects mapped for class %s (department=%s)", class_id, dept)
    return subjects


def _assigned_subjects(student_id, class_id, term_id=None):
    term_filter = StudentSubjectAssignment.term_id.is_(None)
    if term_id is not None:
        term_filter = or_(term_filter, StudentSubjectAssignment.term_id == term_id)

    return db.session.query(Subject).join(
        StudentSubjectAssignment, StudentSubjectAssignment.subject_id == Subject.id
    ).filter(
        StudentSubjectAssignment.student_id == student_id,
        StudentSubjectAssignment.class_id == class_id,
        StudentSubjectAssignment.is_active.is_(True),
        term_filter
    ).distinct().order_by(Subject.name, Subject.id).all()


def subjects_for_student(student_id, class_id=None, term_id=None):
    """
    Get the subjects a student should have on their report card.

    Args:
        student_id: Student.id
        class_id: class to resolve against (defaults to the student's class)
        term_id: term, so term-specific assignments are honoured
    """
    student = db.session.get(Student, student_id)
    if student is None:
        logger.warning("subjects_for_student: student %s not found", student_id)
        return []

    class_id = class_id or student.class_id
    if class_id is None:
        return []

    assigned = _assigned_subjects(student.id, class_id, term_id)
    if assigned:
        return assigned

    return subjects_for_class(class_id, student.department)


def affected_student_ids(class_id, department=None):
    """
    Students whose subject list changes when a mapping of this class changes.
    A department-less mapping affects everyone in the class.
    """
    students = Student.query.filter_by(class_id=class_id, is_active=True).all()

    dept = normalize_department(department)
    if dept is None:
        return [s.id for s in students]

    return [s.id for s in students if normalize_department(s.department) == dept]
