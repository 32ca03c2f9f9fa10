"""
models.py - Database Models for the Report Card Engine
Classes, subjects, exams, and the term report cards built from exam results
"""

from extensions import db
from flask_login import UserMixin
from datetime import datetime
import json


class User(UserMixin, db.Model):
    """
    Base User Model - Identity for staff, students and parents
    """
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(20), nullable=False)  # 'super_admin', 'admin', 'teacher', 'student', 'parent'
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    teacher_profile = db.relationship('Teacher', backref='user', uselist=False, cascade='all, delete-orphan')
    admin_profile = db.relationship('AdminProfile', backref='user', uselist=False, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def get_full_name(self):
        """Return full name"""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def is_admin(self):
        return self.role in ('admin', 'super_admin')

    def is_teacher(self):
        return self.role == 'teacher'


class Teacher(db.Model):
    """
    Teacher Profile - holds the signature used on report cards
    """
    __tablename__ = 'teacher'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)

    employee_number = db.Column(db.String(50), unique=True, nullable=True, index=True)
    signature_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Teacher {self.employee_number} (user {self.user_id})>'


class AdminProfile(db.Model):
    """
    Admin Profile - principal/head signature for report cards
    """
    __tablename__ = 'admin_profile'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)

    position_title = db.Column(db.String(100), nullable=True)  # "Principal", "Vice Principal"
    signature_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<AdminProfile user {self.user_id} ({self.position_title})>'


class AcademicTerm(db.Model):
    """
    Academic Term - "First Term 2025/2026"
    """
    __tablename__ = 'academic_term'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    year = db.Column(db.String(9), nullable=False)  # "2025/2026"
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    is_current = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<AcademicTerm {self.name} {self.year}>'

    @staticmethod
    def get_current():
        """Return the term flagged as current, if any"""
        return AcademicTerm.query.filter_by(is_current=True).order_by(AcademicTerm.id.desc()).first()


class Class(db.Model):
    """
    Class - a school class such as "JSS 2A" or "SS2 Science"
    """
    __tablename__ = 'class'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    level = db.Column(db.String(50), nullable=True)  # "Junior Secondary", "Senior Secondary", "SS2"
    class_teacher_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # === RELATIONSHIPS ===
    students = db.relationship('Student', backref='class_', lazy='dynamic')
    subject_mappings = db.relationship('ClassSubjectMapping', backref='class_', lazy='dynamic',
                                       cascade='all, delete-orphan')
    class_teacher = db.relationship('User', foreign_keys=[class_teacher_id])

    def __repr__(self):
        return f'<Class {self.name} ({self.level})>'


class Subject(db.Model):
    """
    Subject Master List
    """
    __tablename__ = 'subject'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), unique=True, nullable=True, index=True)
    category = db.Column(db.String(30), nullable=False, default='general')  # 'general', 'science', 'art', 'commercial'
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Subject {self.code} - {self.name}>'


class Student(db.Model):
    """
    Student Profile - class membership and (senior classes only) department
    """
    __tablename__ = 'student'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, unique=True)
    admission_number = db.Column(db.String(50), unique=True, nullable=False, index=True)

    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=True, index=True)
    department = db.Column(db.String(50), nullable=True)  # "science", "art", "commercial"
    parent_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    user = db.relationship('User', foreign_keys=[user_id])
    parent = db.relationship('User', foreign_keys=[parent_id])
    report_cards = db.relationship('ReportCard', backref='student', lazy='dynamic', cascade='all, delete-orphan')
    exam_results = db.relationship('ExamResult', backref='student', lazy='dynamic', cascade='all, delete-orphan')
    subject_assignments = db.relationship('StudentSubjectAssignment', backref='student', lazy='dynamic',
                                          cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Student {self.admission_number}>'

    def get_full_name(self):
        """Return full name, falling back to the admission number"""
        if self.user and self.user.get_full_name():
            return self.user.get_full_name()
        return self.admission_number


class ClassSubjectMapping(db.Model):
    """
    Class Subject Mapping - the authoritative list of subjects for a class.
    department NULL applies to every student in the class.
    """
    __tablename__ = 'class_subject_mapping'
    __table_args__ = (
        db.UniqueConstraint('class_id', 'subject_id', 'department', name='uq_class_subject_department'),
    )

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    department = db.Column(db.String(50), nullable=True)
    is_compulsory = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    subject = db.relationship('Subject')

    def __repr__(self):
        return f'<ClassSubjectMapping Class:{self.class_id} Subject:{self.subject_id} Dept:{self.department}>'


class StudentSubjectAssignment(db.Model):
    """
    Student Subject Assignment - per-student override of the class subject list
    """
    __tablename__ = 'student_subject_assignment'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    term_id = db.Column(db.Integer, db.ForeignKey('academic_term.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    subject = db.relationship('Subject')

    def __repr__(self):
        return f'<StudentSubjectAssignment Student:{self.student_id} Subject:{self.subject_id}>'


class Exam(db.Model):
    """
    Exam - a test, quiz, assignment or main examination for one subject
    """
    __tablename__ = 'exam'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=True)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=True)
    term_id = db.Column(db.Integer, db.ForeignKey('academic_term.id'), nullable=True)

    exam_type = db.Column(db.String(20), nullable=False, default='exam')  # 'test', 'quiz', 'assignment', 'exam', 'final', 'midterm'
    total_marks = db.Column(db.Integer, nullable=False, default=100)
    grading_scale = db.Column(db.String(30), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    subject = db.relationship('Subject')
    results = db.relationship('ExamResult', backref='exam', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Exam {self.name} ({self.exam_type}) Subject:{self.subject_id}>'


class ExamResult(db.Model):
    """
    Exam Result - one logical score per (exam, student)
    """
    __tablename__ = 'exam_result'
    __table_args__ = (
        db.UniqueConstraint('exam_id', 'student_id', name='uq_exam_result_exam_student'),
    )

    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exam.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)
    score = db.Column(db.Float, nullable=False)
    max_score = db.Column(db.Float, nullable=True)
    recorded_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<ExamResult Exam:{self.exam_id} Student:{self.student_id} {self.score}/{self.max_score}>'

    @property
    def effective_max_score(self):
        """Max score recorded on the result, else the exam's total marks"""
        if self.max_score:
            return self.max_score
        return self.exam.total_marks if self.exam else None


class ReportCard(db.Model):
    """
    Report Card - one per student per term
    Status lifecycle: draft -> finalized -> published (with back-transitions)
    """
    __tablename__ = 'report_card'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'term_id', name='uq_report_card_student_term'),
        db.Index('ix_report_card_class_term', 'class_id', 'term_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False)
    term_id = db.Column(db.Integer, db.ForeignKey('academic_term.id'), nullable=False)
    session_year = db.Column(db.String(9), nullable=True)

    # === STATUS ===
    status = db.Column(db.String(20), nullable=False, default='draft')  # 'draft', 'finalized', 'published'
    locked = db.Column(db.Boolean, default=False)
    auto_generated = db.Column(db.Boolean, default=False)
    grading_scale = db.Column(db.String(30), nullable=False, default='standard')

    # === AGGREGATES ===
    total_score = db.Column(db.Float, nullable=True)
    average_score = db.Column(db.Float, nullable=True)
    average_percentage = db.Column(db.Float, nullable=True)
    overall_grade = db.Column(db.String(10), nullable=True)
    position = db.Column(db.Integer, nullable=True)
    total_students_in_class = db.Column(db.Integer, nullable=True)

    # === REMARKS & SIGNATURES ===
    teacher_remarks = db.Column(db.Text, nullable=True)
    principal_remarks = db.Column(db.Text, nullable=True)
    teacher_signature_url = db.Column(db.String(500), nullable=True)
    teacher_signed_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    teacher_signed_at = db.Column(db.DateTime, nullable=True)
    principal_signature_url = db.Column(db.String(500), nullable=True)
    principal_signed_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    principal_signed_at = db.Column(db.DateTime, nullable=True)

    # === TIMESTAMPS ===
    generated_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    generated_at = db.Column(db.DateTime, nullable=True)
    finalized_at = db.Column(db.DateTime, nullable=True)
    published_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # === RELATIONSHIPS ===
    items = db.relationship('ReportCardItem', backref='report_card', lazy='dynamic',
                            cascade='all, delete-orphan')
    class_ = db.relationship('Class')
    term = db.relationship('AcademicTerm')

    def __repr__(self):
        return f'<ReportCard Student:{self.student_id} Term:{self.term_id} ({self.status})>'

    def subject_ids(self):
        """Subject ids currently on this report card"""
        return {item.subject_id for item in self.items}


class ReportCardItem(db.Model):
    """
    Report Card Item - one subject row on a report card.
    Test-bucket and exam-bucket scores are kept separately and weighted.
    """
    __tablename__ = 'report_card_item'
    __table_args__ = (
        db.UniqueConstraint('report_card_id', 'subject_id', name='uq_report_card_item_subject'),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_card_id = db.Column(db.Integer, db.ForeignKey('report_card.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)

    # Test bucket (test, quiz, assignment)
    test_score = db.Column(db.Float, nullable=True)
    test_max_score = db.Column(db.Float, nullable=True)
    test_weighted_score = db.Column(db.Float, nullable=True)
    test_exam_id = db.Column(db.Integer, db.ForeignKey('exam.id', ondelete='SET NULL'), nullable=True)
    test_exam_created_by = db.Column(db.Integer, nullable=True)

    # Exam bucket (exam, final, midterm)
    exam_score = db.Column(db.Float, nullable=True)
    exam_max_score = db.Column(db.Float, nullable=True)
    exam_weighted_score = db.Column(db.Float, nullable=True)
    exam_exam_id = db.Column(db.Integer, db.ForeignKey('exam.id', ondelete='SET NULL'), nullable=True)
    exam_exam_created_by = db.Column(db.Integer, nullable=True)

    # Combined result
    total_marks = db.Column(db.Float, nullable=False, default=100)
    obtained_marks = db.Column(db.Float, nullable=False, default=0)
    percentage = db.Column(db.Float, nullable=False, default=0)
    grade = db.Column(db.String(10), nullable=True)
    remarks = db.Column(db.String(100), nullable=True)
    teacher_remarks = db.Column(db.Text, nullable=True)

    # Manual override
    is_overridden = db.Column(db.Boolean, default=False)
    overridden_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    overridden_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subject = db.relationship('Subject')

    def __repr__(self):
        return f'<ReportCardItem Card:{self.report_card_id} Subject:{self.subject_id} Grade:{self.grade}>'

    def has_scores(self):
        """True once a test or exam score has been recorded (or a teacher overrode it)"""
        return self.is_overridden or self.test_score is not None or self.exam_score is not None


class SystemSettings(db.Model):
    """
    System-wide settings stored in database
    Allows admin to override config values (weights, ranking basis)
    """
    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    setting_value = db.Column(db.String(200), nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = db.Column(db.String(100), nullable=True)

    def __repr__(self):
        return f'<SystemSettings {self.setting_key}={self.setting_value}>'

    @staticmethod
    def get_setting(key, default=None):
        """
        Get a setting value from database
        Returns default if not found
        """
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        return setting.setting_value if setting else default

    @staticmethod
    def set_setting(key, value, updated_by=None):
        """
        Set a setting value in database
        Creates new setting if doesn't exist
        """
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        if setting:
            setting.setting_value = str(value)
            setting.updated_at = datetime.utcnow()
            setting.updated_by = updated_by
        else:
            setting = SystemSettings(
                setting_key=key,
                setting_value=str(value),
                updated_by=updated_by
            )
            db.session.add(setting)
        db.session.commit()
        return setting

    @staticmethod
    def delete_setting(key):
        """Delete a setting (revert to the config value)"""
        setting = SystemSettings.query.filter_by(setting_key=key).first()
        if setting:
            db.session.delete(setting)
            db.session.commit()
            return True
        return False


class AuditLog(db.Model):
    """
    Audit Log - who changed which report card and how
    """
    __tablename__ = 'audit_log'

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False)  # 'status_change', 'score_override', ...
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(50), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    details = db.Column(db.Text, nullable=True)  # JSON string
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id}>'

    def get_details(self):
        """Parse and return details as dict"""
        if self.details:
            try:
                return json.loads(self.details)
            except json.JSONDecodeError:
                return {}
        return {}


class SyncAuditLog(db.Model):
    """
    Sync Audit Log - one row per exam-score sync attempt, used for retries
    """
    __tablename__ = 'sync_audit_log'

    id = db.Column(db.Integer, primary_key=True)
    sync_type = db.Column(db.String(20), nullable=False)  # 'exam_submit', 'manual_sync', 'bulk_sync', 'retry', 'admin_repair'
    student_id = db.Column(db.Integer, nullable=False, index=True)
    exam_id = db.Column(db.Integer, nullable=True, index=True)
    subject_id = db.Column(db.Integer, nullable=True)
    term_id = db.Column(db.Integer, nullable=True)
    score = db.Column(db.Float, nullable=True)
    max_score = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(20), nullable=False, default='pending')  # 'pending', 'success', 'failed', 'retrying'
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    max_retries = db.Column(db.Integer, nullable=False, default=3)
    next_retry_at = db.Column(db.DateTime, nullable=True)
    last_retry_at = db.Column(db.DateTime, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    error_code = db.Column(db.String(50), nullable=True)

    report_card_id = db.Column(db.Integer, nullable=True)
    report_card_item_id = db.Column(db.Integer, nullable=True)
    triggered_by = db.Column(db.Integer, nullable=True)
    synced_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<SyncAuditLog {self.sync_type} Student:{self.student_id} Exam:{self.exam_id} ({self.status})>'
