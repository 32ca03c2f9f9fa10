"""
services/report_cards.py - Report card aggregation

Turns exam results into report card items (test bucket + exam bucket,
weighted and graded), keeps each card's subject list in line with the
class mappings, and recomputes card totals. Every mutating entry point
finishes by re-ranking the class.

Sync is called from exam submission, so it never raises: failures come
back as {'success': False, 'message': ..., 'error_code': ...}.
"""

import logging
from datetime import datetime, timedelta

from flask import current_app

from config import Config
from extensions import db
from models import (
    AcademicTerm, AdminProfile, Class, Exam, ExamResult, ReportCard,
    ReportCardItem, Student, SyncAuditLog, Teacher, User
)
from services.audit import log_audit
from services.grading import (
    ExamBucket, aggregate_scores, calculate_gpa, classify_exam_type, classify_grade,
    compute_weighted_score, format_position, get_aggregation_mode, get_system_weights,
    resolve_grading_config, round_half_up, to_finite
)
from services.ranking import rank_class
from services.subject_assignment import subjects_for_student

logger = logging.getLogger(__name__)

SYNC_TYPES = ('exam_submit', 'manual_sync', 'bulk_sync', 'retry', 'admin_repair')

OVERRIDE_FIELDS = ('test_score', 'test_max_score', 'exam_score', 'exam_max_score')


# ========================================
# HELPERS
# ========================================

def default_scale():
    """Priority: Database (SystemSettings) > Config > 'standard'"""
    return Config.get_setting('default_grading_scale', 'DEFAULT_GRADING_SCALE', 'standard')


def default_total_marks():
    return current_app.config.get('DEFAULT_SUBJECT_TOTAL_MARKS', 100)


def load_grading_config(scale_id):
    """GradingConfig for a scale with the school-wide weights applied"""
    return resolve_grading_config(scale_id or default_scale(), get_system_weights(), get_aggregation_mode())


def apply_scores(item, config):
    """
    Recompute an item's weighted scores, percentage and grade from its
    stored test and exam fields. Does not commit.
    """
    weighted = compute_weighted_score(
        item.test_score, item.test_max_score,
        item.exam_score, item.exam_max_score,
        config
    )

    item.test_weighted_score = weighted.test_weighted if item.test_score is not None else None
    item.exam_weighted_score = weighted.exam_weighted if item.exam_score is not None else None

    # obtained marks follow the unnormalised weighted score, rescaled when
    # the weights don't add up to the subject's total marks
    total_marks = to_finite(item.total_marks) or default_total_marks()
    item.total_marks = total_marks
    item.percentage = weighted.percentage
    if config.total_weight > 0:
        item.obtained_marks = round_half_up(weighted.weighted_score * total_marks / config.total_weight, 1)
    else:
        item.obtained_marks = 0.0

    if item.test_score is None and item.exam_score is None and not item.is_overridden:
        item.grade = None
        item.remarks = None
        return item

    boundary = classify_grade(weighted.percentage, config.scale_id)
    item.grade = boundary.grade
    item.remarks = boundary.remarks
    return item


def _write_bucket(item, bucket, score, max_score, exam_id=None, created_by=None):
    if bucket is ExamBucket.EXAM:
        item.exam_score = score
        item.exam_max_score = max_score
        item.exam_exam_id = exam_id
        item.exam_exam_created_by = created_by
    else:
        item.test_score = score
        item.test_max_score = max_score
        item.test_exam_id = exam_id
        item.test_exam_created_by = created_by


def _pick_result(results, mode):
    """
    Collapse the results recorded for one bucket.
    Returns (score, max_score, exam) or None.
    """
    if not results:
        return None

    last = results[-1]

    if mode == 'best':
        # compare as fractions so results out of different totals line up
        ratios = []
        for result in results:
            max_score = to_finite(result.effective_max_score)
            ratios.append(to_finite(result.score) / max_score if max_score > 0 else 0.0)
        best = results[ratios.index(aggregate_scores(ratios, 'best'))]
        return best.score, best.effective_max_score, best.exam

    if mode == 'average':
        return (
            aggregate_scores([r.score for r in results], 'average'),
            aggregate_scores([r.effective_max_score for r in results], 'average'),
            last.exam
        )

    return last.score, last.effective_max_score, last.exam


def backfill_item(item, card, config):
    """
    Fill an item's buckets from exam results already recorded for this
    student, subject and term. Overridden items are left alone.
    Does not commit.
    """
    if item.is_overridden:
        return item

    results = ExamResult.query.join(Exam, ExamResult.exam_id == Exam.id).filter(
        ExamResult.student_id == card.student_id,
        Exam.subject_id == item.subject_id,
        Exam.term_id == card.term_id
    ).order_by(ExamResult.created_at, ExamResult.id).all()

    buckets = {ExamBucket.TEST: [], ExamBucket.EXAM: []}
    for result in results:
        buckets[classify_exam_type(result.exam.exam_type)].append(result)

    for bucket, bucket_results in buckets.items():
        picked = _pick_result(bucket_results, config.aggregation_mode)
        if picked is None:
            continue
        score, max_score, exam = picked
        _write_bucket(item, bucket, score, max_score, exam.id, exam.created_by)

    return apply_scores(item, config)


def find_or_create_report_card(student, class_id, term_id, grading_scale=None, generated_by=None):
    """
    Returns (report_card, created). New cards start as unlocked drafts.
    Does not commit.
    """
    card = ReportCard.query.filter_by(student_id=student.id, term_id=term_id).first()
    if card:
        return card, False

    term = db.session.get(AcademicTerm, term_id)
    card = ReportCard(
        student_id=student.id,
        class_id=class_id,
        term_id=term_id,
        session_year=term.year if term else None,
        status='draft',
        locked=False,
        auto_generated=True,
        grading_scale=grading_scale or default_scale(),
        generated_by=generated_by,
        generated_at=datetime.utcnow()
    )
    db.session.add(card)
    db.session.flush()
    return card, True


def add_missing_items(card, subjects, config):
    """
    Add an item for every subject not yet on the card, backfilled from
    recorded results. Never removes anything. Does not commit.
    """
    existing = card.subject_ids()
    added = []
    for subject in subjects:
        if subject.id in existing:
            continue
        item = ReportCardItem(
            report_card_id=card.id,
            subject_id=subject.id,
            total_marks=default_total_marks(),
            obtained_marks=0,
            percentage=0
        )
        db.session.add(item)
        backfill_item(item, card, config)
        existing.add(subject.id)
        added.append(item)

    if added:
        db.session.flush()
        logger.info("Added %d subject(s) to report card %s", len(added), card.id)
    return added


def remove_stale_items(card, subject_ids):
    """Delete items whose subject is no longer resolved. Does not commit."""
    removed = 0
    for item in card.items.all():
        if item.subject_id not in subject_ids:
            db.session.delete(item)
            removed += 1
    if removed:
        db.session.flush()
        logger.info("Removed %d stale subject(s) from report card %s", removed, card.id)
    return removed


def rank_class_quietly(class_id, term_id):
    """Ranking after a committed change; a failure here doesn't undo the change"""
    try:
        rank_class(class_id, term_id)
    except Exception:
        db.session.rollback()
        logger.warning("Position recalculation failed for class %s term %s", class_id, term_id, exc_info=True)


# ========================================
# AGGREGATE RECOMPUTE
# ========================================

def recalculate_report_card(report_card_id, grading_scale=None, commit=True):
    """
    Recompute a card's totals from its scored items.

    Only items with a test or exam score (or an override) count. A card
    with no scored items keeps whatever totals it had.

    Returns:
        dict of the totals, or None if the card doesn't exist
    """
    card = db.session.get(ReportCard, report_card_id)
    if card is None:
        logger.warning("recalculate_report_card: report card %s not found", report_card_id)
        return None

    scale = grading_scale or card.grading_scale or default_scale()
    scored = [item for item in card.items if item.has_scores()]

    if not scored:
        logger.info("Report card %s has no scored subjects, totals unchanged", card.id)
        return _totals(card, 0)

    total_obtained = sum(to_finite(item.obtained_marks) for item in scored)
    total_marks = sum(to_finite(item.total_marks) or default_total_marks() for item in scored)

    average_percentage = round_half_up(total_obtained / total_marks * 100, 1) if total_marks > 0 else 0.0

    card.total_score = round_half_up(total_obtained, 1)
    card.average_score = round_half_up(total_obtained / len(scored), 1)
    card.average_percentage = average_percentage
    card.overall_grade = classify_grade(average_percentage, scale).grade
    card.updated_at = datetime.utcnow()

    if commit:
        db.session.commit()

    logger.debug("Recalculated report card %s: %s%% (%s)", card.id, average_percentage, card.overall_grade)
    return _totals(card, len(scored))


def regrade_report_card(report_card_id, commit=True):
    """
    Re-derive every item's weighted score and grade from its stored test and
    exam fields, then recompute the card totals.
    """
    card = db.session.get(ReportCard, report_card_id)
    if card is None:
        return None

    config = load_grading_config(card.grading_scale)
    for item in card.items:
        apply_scores(item, config)
    db.session.flush()

    return recalculate_report_card(card.id, commit=commit)


def _totals(card, scored_count):
    return {
        'report_card_id': card.id,
        'total_score': card.total_score,
        'average_score': card.average_score,
        'average_percentage': card.average_percentage,
        'overall_grade': card.overall_grade,
        'scored_subjects': scored_count,
    }


# ========================================
# SCORE SYNC
# ========================================

def _failure(message, error_code, **extra):
    result = {
        'success': False,
        'report_card_id': None,
        'report_card_item_id': None,
        'is_new_report_card': False,
        'message': message,
        'error_code': error_code,
    }
    result.update(extra)
    return result


def _perform_sync(student_id, exam_id, score, max_score):
    exam = db.session.get(Exam, exam_id)
    if exam is None:
        return _failure(f'Exam {exam_id} not found', 'EXAM_NOT_FOUND')

    missing = [name for name in ('subject_id', 'class_id', 'term_id') if getattr(exam, name) is None]
    if missing:
        return _failure(f"Exam {exam_id} is missing {', '.join(missing)}", 'MISSING_EXAM_FIELDS')

    student = db.session.get(Student, student_id)
    if student is None:
        return _failure(f'Student {student_id} not found', 'STUDENT_NOT_FOUND')

    card, is_new = find_or_create_report_card(
        student, exam.class_id, exam.term_id, grading_scale=exam.grading_scale
    )

    if card.locked:
        logger.info("Report card %s is locked, skipping sync of exam %s", card.id, exam.id)
        return {
            'success': True,
            'report_card_id': card.id,
            'report_card_item_id': None,
            'is_new_report_card': False,
            'message': 'Skipped - report card is locked',
            'skipped': True,
        }

    config = load_grading_config(card.grading_scale)

    subjects = subjects_for_student(student.id, exam.class_id, exam.term_id)
    add_missing_items(card, subjects, config)

    item = card.items.filter_by(subject_id=exam.subject_id).first()
    if item is None:
        item = ReportCardItem(
            report_card_id=card.id,
            subject_id=exam.subject_id,
            total_marks=default_total_marks(),
            obtained_marks=0,
            percentage=0
        )
        db.session.add(item)
        db.session.flush()

    if item.is_overridden:
        logger.info("Item %s is manually overridden, skipping", item.id)
        db.session.commit()
        return {
            'success': True,
            'report_card_id': card.id,
            'report_card_item_id': item.id,
            'is_new_report_card': is_new,
            'message': 'Skipped - item manually overridden',
            'skipped': True,
        }

    safe_score = to_finite(score)
    safe_max = to_finite(max_score) if max_score is not None else to_finite(exam.total_marks)
    bucket = classify_exam_type(exam.exam_type)

    _write_bucket(item, bucket, safe_score, safe_max, exam.id, exam.created_by)
    apply_scores(item, config)
    item.updated_at = datetime.utcnow()
    db.session.flush()

    recalculate_report_card(card.id, commit=False)
    db.session.commit()

    logger.info(
        "Synced exam %s for student %s: %s %s/%s, grade %s",
        exam.id, student.id, bucket.value, safe_score, safe_max, item.grade
    )

    rank_class_quietly(card.class_id, card.term_id)

    percent = f'{item.percentage:g}'
    if is_new:
        message = f'New report card created. Grade: {item.grade} ({percent}%)'
    else:
        message = f'Score synced. Grade: {item.grade} ({percent}%)'

    return {
        'success': True,
        'report_card_id': card.id,
        'report_card_item_id': item.id,
        'is_new_report_card': is_new,
        'message': message,
    }


def record_sync(result, sync_type, student_id, exam_id, score, max_score, triggered_by=None):
    """Write a SyncAuditLog row for a finished sync attempt (best effort)"""
    try:
        exam = db.session.get(Exam, exam_id) if exam_id is not None else None
        entry = SyncAuditLog(
            sync_type=sync_type if sync_type in SYNC_TYPES else 'manual_sync',
            student_id=student_id,
            exam_id=exam_id,
            subject_id=exam.subject_id if exam else None,
            term_id=exam.term_id if exam else None,
            score=to_finite(score) if score is not None else None,
            max_score=to_finite(max_score) if max_score is not None else None,
            max_retries=current_app.config.get('SYNC_MAX_RETRIES', 3),
            triggered_by=triggered_by
        )
        apply_sync_outcome(entry, result)
        if not result['success']:
            delays = current_app.config.get('SYNC_RETRY_DELAYS', (1, 5, 15)) or (0,)
            entry.next_retry_at = datetime.utcnow() + timedelta(seconds=delays[0])
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        logger.warning("Could not write sync audit log for exam %s student %s", exam_id, student_id, exc_info=True)
        return None


def apply_sync_outcome(entry, result):
    entry.status = 'success' if result['success'] else 'failed'
    entry.report_card_id = result.get('report_card_id')
    entry.report_card_item_id = result.get('report_card_item_id')
    entry.synced_at = datetime.utcnow() if result['success'] else None
    entry.error_message = None if result['success'] else result.get('message')
    entry.error_code = result.get('error_code')
    return entry


def sync_exam_score(student_id, exam_id, score, max_score=None, sync_type='exam_submit',
                    triggered_by=None, record=True):
    """
    Push one exam score into the student's report card for the exam's term.

    Creates the card (seeded with the student's subjects) if needed, writes
    the score into the test or exam bucket, re-grades the item, recomputes
    the card and re-ranks the class. Calling it twice with the same
    arguments leaves the same state.

    Args:
        student_id: Student.id
        exam_id: Exam.id
        score: score obtained
        max_score: out of (defaults to the exam's total marks)
        sync_type: what triggered the sync, for the sync audit log
        triggered_by: User.id of the acting user, if any
        record: write a SyncAuditLog row for this attempt

    Returns:
        dict with success, report_card_id, report_card_item_id,
        is_new_report_card, message (and error_code on failure)
    """
    try:
        result = _perform_sync(student_id, exam_id, score, max_score)
    except Exception as e:
        db.session.rollback()
        logger.exception("Unhandled error syncing exam %s for student %s", exam_id, student_id)
        result = _failure(str(e) or 'Sync failed with unhandled error', 'UNHANDLED_ERROR')

    if not result['success']:
        logger.warning("Sync failed for exam %s student %s: %s", exam_id, student_id, result['message'])

    if record:
        entry = record_sync(result, sync_type, student_id, exam_id, score, max_score, triggered_by)
        result['sync_log_id'] = entry.id if entry else None

    return result


# ========================================
# MANUAL OVERRIDE
# ========================================

def _parse_override_value(name, value):
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f'{name} must be a number')
    if to_finite(number, default=None) is None:
        raise ValueError(f'{name} must be a finite number')
    if number < 0:
        raise ValueError(f'{name} cannot be negative')
    return number


def override_item_score(item_id, data, overridden_by):
    """
    Manually set an item's scores. The item is then immune to automatic sync.

    Works on locked cards too, since this is the explicit edit path.

    Args:
        item_id: ReportCardItem.id
        data: dict with any of test_score, test_max_score, exam_score,
              exam_max_score, teacher_remarks
        overridden_by: User.id

    Raises:
        ValueError: a score is not a non-negative number, or exceeds its max
    """
    item = db.session.get(ReportCardItem, item_id)
    if item is None:
        return {'success': False, 'message': f'Report card item {item_id} not found'}

    data = data or {}
    updates = {}
    for field in OVERRIDE_FIELDS:
        if field in data:
            updates[field] = _parse_override_value(field, data[field])

    test_score = updates.get('test_score', item.test_score)
    test_max = updates.get('test_max_score', item.test_max_score)
    exam_score = updates.get('exam_score', item.exam_score)
    exam_max = updates.get('exam_max_score', item.exam_max_score)
    if test_score is not None and test_max and test_score > test_max:
        raise ValueError('test_score cannot exceed test_max_score')
    if exam_score is not None and exam_max and exam_score > exam_max:
        raise ValueError('exam_score cannot exceed exam_max_score')

    for field, value in updates.items():
        setattr(item, field, value)
    if 'teacher_remarks' in data:
        item.teacher_remarks = data['teacher_remarks']

    card = item.report_card
    item.is_overridden = True
    item.overridden_by = overridden_by
    item.overridden_at = datetime.utcnow()
    apply_scores(item, load_grading_config(card.grading_scale))
    db.session.flush()

    recalculate_report_card(card.id, commit=False)
    db.session.commit()
    logger.info("Item %s on report card %s overridden by user %s", item.id, card.id, overridden_by)

    rank_class_quietly(card.class_id, card.term_id)

    log_audit('score_override', 'report_card_item', item.id, overridden_by, {
        'report_card_id': card.id,
        'subject_id': item.subject_id,
        'changes': updates,
        'grade': item.grade,
    })

    return {
        'success': True,
        'message': f'Score overridden. Grade: {item.grade} ({item.percentage:g}%)',
        'report_card_id': card.id,
        'item': serialize_item(item),
    }


def clear_item_override(item_id, user_id):
    """
    Remove a manual override and re-derive the item from recorded exam results
    """
    item = db.session.get(ReportCardItem, item_id)
    if item is None:
        return {'success': False, 'message': f'Report card item {item_id} not found'}

    if not item.is_overridden:
        return {'success': True, 'message': 'Item is not overridden', 'item': serialize_item(item)}

    card = item.report_card
    item.is_overridden = False
    item.overridden_by = None
    item.overridden_at = None
    _write_bucket(item, ExamBucket.TEST, None, None)
    _write_bucket(item, ExamBucket.EXAM, None, None)
    backfill_item(item, card, load_grading_config(card.grading_scale))
    db.session.flush()

    recalculate_report_card(card.id, commit=False)
    db.session.commit()
    logger.info("Override cleared on item %s by user %s", item.id, user_id)

    rank_class_quietly(card.class_id, card.term_id)
    log_audit('override_removed', 'report_card_item', item.id, user_id, {'report_card_id': card.id})

    return {
        'success': True,
        'message': 'Override removed, scores restored from exam results',
        'report_card_id': card.id,
        'item': serialize_item(item),
    }


# ========================================
# BULK GENERATION
# ========================================

def generate_report_cards_for_class(class_id, term_id, grading_scale=None, generated_by=None):
    """
    Create or refresh the report cards of every active student in a class.

    One student's failure is recorded in 'errors' and the rest carry on.
    Students whose class has no subjects configured still get an (empty)
    card plus an error entry.

    Returns:
        dict with success, created, updated, processed, errors, message
    """
    summary = {'success': True, 'created': 0, 'updated': 0, 'processed': 0, 'errors': []}

    cls = db.session.get(Class, class_id)
    if cls is None:
        summary.update(success=False, message=f'Class {class_id} not found')
        summary['errors'].append(summary['message'])
        return summary

    term = db.session.get(AcademicTerm, term_id)
    if term is None:
        summary.update(success=False, message=f'Term {term_id} not found')
        summary['errors'].append(summary['message'])
        return summary

    students = Student.query.filter_by(class_id=class_id, is_active=True).order_by(Student.id).all()

    for student in students:
        try:
            card, created = find_or_create_report_card(
                student, class_id, term_id,
                grading_scale=grading_scale, generated_by=generated_by
            )

            if card.locked:
                summary['processed'] += 1
                logger.info("Report card %s is locked, left unchanged", card.id)
                db.session.commit()
                continue

            config = load_grading_config(card.grading_scale)
            subjects = subjects_for_student(student.id, class_id, term_id)
            add_missing_items(card, subjects, config)

            for item in card.items:
                if not item.has_scores():
                    backfill_item(item, card, config)

            if not created:
                card.generated_by = generated_by or card.generated_by
                card.generated_at = datetime.utcnow()

            db.session.flush()
            recalculate_report_card(card.id, commit=False)
            db.session.commit()

            summary['created' if created else 'updated'] += 1
            summary['processed'] += 1

            if not subjects:
                summary['errors'].append(
                    f'No subjects configured for {student.get_full_name()} ({student.admission_number})'
                )
        except Exception as e:
            db.session.rollback()
            logger.exception("Report card generation failed for student %s", student.id)
            summary['errors'].append(f'Student {student.admission_number}: {e}')

    rank_class_quietly(class_id, term_id)

    summary['message'] = (
        f"Generated report cards for {cls.name}: {summary['created']} created, "
        f"{summary['updated']} updated, {len(summary['errors'])} issue(s)"
    )
    logger.info(summary['message'])

    log_audit('generate_report_cards', 'class', class_id, generated_by, {
        'term_id': term_id,
        'created': summary['created'],
        'updated': summary['updated'],
        'errors': len(summary['errors']),
    })
    return summary


# ========================================
# READ MODEL
# ========================================

def serialize_item(item):
    return {
        'id': item.id,
        'subject_id': item.subject_id,
        'subject_name': item.subject.name if item.subject else None,
        'test_score': item.test_score,
        'test_max_score': item.test_max_score,
        'test_weighted_score': item.test_weighted_score,
        'exam_score': item.exam_score,
        'exam_max_score': item.exam_max_score,
        'exam_weighted_score': item.exam_weighted_score,
        'total_marks': item.total_marks,
        'obtained_marks': item.obtained_marks,
        'percentage': item.percentage,
        'grade': item.grade,
        'remarks': item.remarks,
        'teacher_remarks': item.teacher_remarks,
        'is_overridden': bool(item.is_overridden),
        'overridden_by': item.overridden_by,
        'overridden_at': item.overridden_at.isoformat() if item.overridden_at else None,
        'test_exam_id': item.test_exam_id,
        'exam_exam_id': item.exam_exam_id,
    }


def _fallback_teacher_signature(cls):
    if cls is None or cls.class_teacher_id is None:
        return None, None
    profile = Teacher.query.filter_by(user_id=cls.class_teacher_id).first()
    if profile and profile.signature_url:
        return profile.signature_url, cls.class_teacher_id
    return None, None


def _fallback_principal_signature():
    for role in ('super_admin', 'admin'):
        profile = AdminProfile.query.join(User, AdminProfile.user_id == User.id).filter(
            User.role == role,
            AdminProfile.signature_url.isnot(None),
            AdminProfile.signature_url != ''
        ).order_by(AdminProfile.id).first()
        if profile:
            return profile.signature_url, profile.user_id
    return None, None


def get_report_card_with_items(report_card_id):
    """
    Full report card for display: card fields, student, class, term,
    items with subject names and the signatures to print.

    Returns None when the card doesn't exist.
    """
    card = db.session.get(ReportCard, report_card_id)
    if card is None:
        return None

    student = card.student
    cls = card.class_

    teacher_signature, teacher_signed_by = card.teacher_signature_url, card.teacher_signed_by
    if not teacher_signature:
        teacher_signature, teacher_signed_by = _fallback_teacher_signature(cls)

    principal_signature, principal_signed_by = card.principal_signature_url, card.principal_signed_by
    if not principal_signature:
        principal_signature, principal_signed_by = _fallback_principal_signature()

    items = sorted(card.items.all(), key=lambda i: ((i.subject.name if i.subject else ''), i.id))
    graded = [item.grade for item in items if item.grade]

    return {
        'id': card.id,
        'status': card.status,
        'locked': bool(card.locked),
        'grading_scale': card.grading_scale,
        'session_year': card.session_year,
        'total_score': card.total_score,
        'average_score': card.average_score,
        'average_percentage': card.average_percentage,
        'overall_grade': card.overall_grade,
        'position': card.position,
        'position_display': format_position(card.position),
        'gpa': calculate_gpa(graded, card.grading_scale or default_scale()) if graded else None,
        'total_students_in_class': card.total_students_in_class,
        'teacher_remarks': card.teacher_remarks,
        'principal_remarks': card.principal_remarks,
        'teacher_signature_url': teacher_signature,
        'teacher_signed_by': teacher_signed_by,
        'principal_signature_url': principal_signature,
        'principal_signed_by': principal_signed_by,
        'generated_at': card.generated_at.isoformat() if card.generated_at else None,
        'finalized_at': card.finalized_at.isoformat() if card.finalized_at else None,
        'published_at': card.published_at.isoformat() if card.published_at else None,
        'student': {
            'id': student.id,
            'name': student.get_full_name(),
            'admission_number': student.admission_number,
            'department': student.department,
        },
        'class': {'id': cls.id, 'name': cls.name, 'level': cls.level} if cls else None,
        'term': {'id': card.term.id, 'name': card.term.name, 'year': card.term.year} if card.term else None,
        'items': [serialize_item(item) for item in items],
    }
