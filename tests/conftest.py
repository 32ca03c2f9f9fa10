import itertools

import pytest

from app import create_app
from extensions import db as _db
from models import (
    AcademicTerm, AdminProfile, Class, ClassSubjectMapping, Exam, ExamResult,
    Student, StudentSubjectAssignment, Subject, Teacher, User
)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Small helpers for building school data in tests"""

    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def _save(self, obj):
        self.db.session.add(obj)
        self.db.session.commit()
        return obj

    def user(self, role='teacher', first_name='Test', last_name='User'):
        n = next(self._seq)
        return self._save(User(
            email=f'{role}{n}@school.test', role=role,
            first_name=first_name, last_name=last_name
        ))

    def teacher(self, signature_url=None):
        user = self.user('teacher')
        self._save(Teacher(user_id=user.id, signature_url=signature_url))
        return user

    def admin(self, role='admin', signature_url=None, title='Principal'):
        user = self.user(role)
        self._save(AdminProfile(user_id=user.id, signature_url=signature_url, position_title=title))
        return user

    def term(self, name='First Term', year='2025/2026', is_current=True):
        return self._save(AcademicTerm(name=name, year=year, is_current=is_current))

    def school_class(self, name=None, level='Senior Secondary', class_teacher=None):
        n = next(self._seq)
        return self._save(Class(
            name=name or f'Class {n}', level=level,
            class_teacher_id=class_teacher.id if class_teacher else None
        ))

    def subject(self, name, category='general', is_active=True):
        n = next(self._seq)
        return self._save(Subject(name=name, code=f'SUB{n}', category=category, is_active=is_active))

    def map_subject(self, cls, subject, department=None, is_compulsory=False):
        return self._save(ClassSubjectMapping(
            class_id=cls.id, subject_id=subject.id,
            department=department, is_compulsory=is_compulsory
        ))

    def assign_subject(self, student, cls, subject, term=None, is_active=True):
        return self._save(StudentSubjectAssignment(
            student_id=student.id, class_id=cls.id, subject_id=subject.id,
            term_id=term.id if term else None, is_active=is_active
        ))

    def student(self, cls, department=None, is_active=True, first_name='Ada', last_name='Obi', id=None):
        n = next(self._seq)
        user = self.user('student', first_name=first_name, last_name=last_name)
        return self._save(Student(
            id=id, user_id=user.id, admission_number=f'ADM{n:04d}',
            class_id=cls.id, department=department, is_active=is_active
        ))

    def exam(self, subject, cls, term, exam_type='exam', total_marks=100, grading_scale='standard', created_by=None):
        return self._save(Exam(
            name=f'{subject.name} {exam_type}',
            subject_id=subject.id, class_id=cls.id, term_id=term.id,
            exam_type=exam_type, total_marks=total_marks,
            grading_scale=grading_scale,
            created_by=created_by.id if created_by else None
        ))

    def result(self, exam, student, score, max_score=None):
        return self._save(ExamResult(
            exam_id=exam.id, student_id=student.id,
            score=score, max_score=max_score
        ))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def school(factory):
    """
    A senior class with two shared subjects and a science-only subject,
    one science student and one arts student.
    """
    term = factory.term()
    cls = factory.school_class(name='SS2 A', level='SS2')
    math = factory.subject('Mathematics')
    english = factory.subject('English Language')
    physics = factory.subject('Physics', category='science')
    factory.map_subject(cls, math, is_compulsory=True)
    factory.map_subject(cls, english, is_compulsory=True)
    factory.map_subject(cls, physics, department='science')

    science = factory.student(cls, department='Science', first_name='Ada')
    arts = factory.student(cls, department='arts', first_name='Bola')

    return {
        'term': term,
        'class': cls,
        'math': math,
        'english': english,
        'physics': physics,
        'science_student': science,
        'arts_student': arts,
    }


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)
            sess['_fresh'] = True
        return user
    return _login
