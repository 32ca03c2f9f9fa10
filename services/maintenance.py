"""
services/maintenance.py - Bulk repair operations for report cards

Run on demand by admins after subject mappings change or when exam scores
didn't make it onto report cards. Each operation works through one entity
at a time, commits per entity, and reports failures in 'errors' instead
of raising.
"""

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import AcademicTerm, Exam, ExamResult, ReportCard, SyncAuditLog
from services.grading import ExamBucket, classify_exam_type
from services.ranking import rank_class
from services.report_cards import (
    add_missing_items, apply_sync_outcome, load_grading_config,
    recalculate_report_card, remove_stale_items, sync_exam_score
)
from services.subject_assignment import affected_student_ids, subjects_for_student

logger = logging.getLogger(__name__)


def _rank_touched(pairs, errors):
    for class_id, term_id in sorted(pairs):
        try:
            rank_class(class_id, term_id)
        except Exception as e:
            db.session.rollback()
            logger.exception("Ranking failed for class %s term %s", class_id, term_id)
            errors.append(f'Ranking class {class_id} term {term_id}: {e}')


def _cards_for_classes(class_ids):
    if not class_ids:
        return []
    return ReportCard.query.filter(ReportCard.class_id.in_(class_ids)).order_by(ReportCard.id).all()


def _cleanup_cards(cards, label):
    summary = {'processed': 0, 'removed': 0, 'added': 0, 'skipped': 0, 'errors': []}
    touched = set()

    for card in cards:
        try:
            if card.locked:
                summary['skipped'] += 1
                continue

            subjects = subjects_for_student(card.student_id, card.class_id, card.term_id)
            if not subjects:
                summary['skipped'] += 1
                logger.warning("No subjects resolved for report card %s, left unchanged", card.id)
                continue

            config = load_grading_config(card.grading_scale)
            removed = remove_stale_items(card, {s.id for s in subjects})
            added = add_missing_items(card, subjects, config)

            recalculate_report_card(card.id, commit=False)
            db.session.commit()

            summary['processed'] += 1
            summary['removed'] += removed
            summary['added'] += len(added)
            if removed or added:
                touched.add((card.class_id, card.term_id))
        except Exception as e:
            db.session.rollback()
            logger.exception("Cleanup failed for report card %s", card.id)
            summary['errors'].append(f'Report card {card.id}: {e}')

    _rank_touched(touched, summary['errors'])

    logger.info(
        "Cleanup for %s: %d processed, %d removed, %d added, %d errors",
        label, summary['processed'], summary['removed'], summary['added'], len(summary['errors'])
    )
    return summary


def cleanup_report_cards_for_classes(class_ids):
    """
    Bring report cards of the given classes in line with the current
    subject mappings: remove subjects no longer assigned, add missing ones.

    Locked cards are skipped. Cards whose student resolves to no subjects
    at all are left alone (the class isn't configured yet).

    Returns:
        dict with processed, removed, added, skipped, errors
    """
    return _cleanup_cards(_cards_for_classes(class_ids), f'classes {class_ids}')


def cleanup_report_cards_for_mapping(class_id, department=None):
    """
    Re-sync report cards after a subject mapping of a class changed.
    Only students the mapping applies to are touched:
    everyone for a department-less mapping, otherwise that department.
    """
    student_ids = affected_student_ids(class_id, department)
    cards = []
    if student_ids:
        cards = ReportCard.query.filter(
            ReportCard.class_id == class_id,
            ReportCard.student_id.in_(student_ids)
        ).order_by(ReportCard.id).all()
    return _cleanup_cards(cards, f'class {class_id} department {department or "all"}')


def add_missing_subjects_to_report_cards(class_ids):
    """
    Add resolved subjects missing from existing report cards. Never removes.

    Returns:
        dict with processed, added, skipped, errors
    """
    summary = {'processed': 0, 'added': 0, 'skipped': 0, 'errors': []}
    touched = set()

    for card in _cards_for_classes(class_ids):
        try:
            if card.locked:
                summary['skipped'] += 1
                continue

            subjects = subjects_for_student(card.student_id, card.class_id, card.term_id)
            added = add_missing_items(card, subjects, load_grading_config(card.grading_scale))
            if added:
                recalculate_report_card(card.id, commit=False)
                touched.add((card.class_id, card.term_id))
            db.session.commit()

            summary['processed'] += 1
            summary['added'] += len(added)
        except Exception as e:
            db.session.rollback()
            logger.exception("Adding missing subjects failed for report card %s", card.id)
            summary['errors'].append(f'Report card {card.id}: {e}')

    _rank_touched(touched, summary['errors'])

    logger.info("Added %d missing subject(s) across classes %s", summary['added'], class_ids)
    return summary


def _count_outcome(summary, outcome, label):
    if not outcome['success']:
        summary['failed'] += 1
        summary['errors'].append(f"{label}: {outcome['message']}")
    elif outcome.get('skipped'):
        summary['skipped'] += 1
    else:
        summary['synced'] += 1


def _needs_sync(result):
    exam = result.exam
    card = ReportCard.query.filter_by(student_id=result.student_id, term_id=exam.term_id).first()
    if card is None:
        return True

    item = card.items.filter_by(subject_id=exam.subject_id).first()
    if item is None:
        return True

    if classify_exam_type(exam.exam_type) is ExamBucket.EXAM:
        return item.exam_score is None
    return item.test_score is None


def sync_all_missing_exam_scores(term_id=None):
    """
    Sync every exam result of a term whose score hasn't reached the
    report card (no item, or the item's bucket is empty).

    Args:
        term_id: defaults to the current term

    Returns:
        dict with checked, synced, skipped, failed, errors
    """
    summary = {'checked': 0, 'synced': 0, 'skipped': 0, 'failed': 0, 'errors': []}

    if term_id is None:
        term = AcademicTerm.get_current()
        if term is None:
            summary['errors'].append('No current academic term set')
            return summary
        term_id = term.id

    results = ExamResult.query.join(Exam, ExamResult.exam_id == Exam.id).filter(
        Exam.term_id == term_id
    ).order_by(ExamResult.created_at, ExamResult.id).all()

    for result in results:
        summary['checked'] += 1
        try:
            if not _needs_sync(result):
                continue
        except Exception as e:
            db.session.rollback()
            summary['failed'] += 1
            summary['errors'].append(f'Exam {result.exam_id} student {result.student_id}: {e}')
            continue

        outcome = sync_exam_score(
            result.student_id, result.exam_id, result.score, result.effective_max_score,
            sync_type='admin_repair'
        )
        _count_outcome(summary, outcome, f'Exam {result.exam_id} student {result.student_id}')

    logger.info(
        "Missing score sync for term %s: %d checked, %d synced, %d failed",
        term_id, summary['checked'], summary['synced'], summary['failed']
    )
    return summary


def sync_exam_results_to_report_cards(exam_id):
    """
    Push every recorded result of one exam onto report cards.

    Returns:
        dict with total, synced, skipped, failed, errors
    """
    summary = {'total': 0, 'synced': 0, 'skipped': 0, 'failed': 0, 'errors': []}

    exam = db.session.get(Exam, exam_id)
    if exam is None:
        summary['errors'].append(f'Exam {exam_id} not found')
        return summary

    results = exam.results.order_by(ExamResult.created_at, ExamResult.id).all()
    summary['total'] = len(results)

    for result in results:
        outcome = sync_exam_score(
            result.student_id, exam.id, result.score, result.effective_max_score,
            sync_type='bulk_sync'
        )
        _count_outcome(summary, outcome, f'Student {result.student_id}')

    logger.info(
        "Exam %s: synced %d/%d results, %d skipped",
        exam_id, summary['synced'], summary['total'], summary['skipped']
    )
    return summary


def _retry_delay(retry_count):
    delays = current_app.config.get('SYNC_RETRY_DELAYS', (1, 5, 15)) or (0,)
    index = min(retry_count, len(delays) - 1)
    return timedelta(seconds=delays[index])


def retry_failed_syncs(limit=50):
    """
    Re-run failed score syncs that still have retries left and whose
    back-off has elapsed.

    Returns:
        dict with attempted, succeeded, failed, exhausted, errors
    """
    summary = {'attempted': 0, 'succeeded': 0, 'failed': 0, 'exhausted': 0, 'errors': []}
    now = datetime.utcnow()

    entries = SyncAuditLog.query.filter(
        SyncAuditLog.status == 'failed',
        SyncAuditLog.retry_count < SyncAuditLog.max_retries,
        or_(SyncAuditLog.next_retry_at.is_(None), SyncAuditLog.next_retry_at <= now)
    ).order_by(SyncAuditLog.created_at, SyncAuditLog.id).limit(limit).all()

    for entry in entries:
        summary['attempted'] += 1
        entry.status = 'retrying'
        entry.last_retry_at = now
        db.session.commit()

        outcome = sync_exam_score(
            entry.student_id, entry.exam_id, entry.score, entry.max_score,
            sync_type='retry', triggered_by=entry.triggered_by, record=False
        )

        try:
            entry = db.session.get(SyncAuditLog, entry.id)
            entry.retry_count += 1
            apply_sync_outcome(entry, outcome)
            if outcome['success']:
                entry.next_retry_at = None
                summary['succeeded'] += 1
            else:
                summary['failed'] += 1
                summary['errors'].append(f"Sync {entry.id}: {outcome['message']}")
                if entry.retry_count >= entry.max_retries:
                    entry.next_retry_at = None
                    summary['exhausted'] += 1
                else:
                    entry.next_retry_at = now + _retry_delay(entry.retry_count)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Could not update sync log %s after retry", entry.id)
            summary['errors'].append(f'Sync {entry.id}: {e}')

    if summary['attempted']:
        logger.info(
            "Retried %d failed sync(s): %d succeeded, %d failed, %d exhausted",
            summary['attempted'], summary['succeeded'], summary['failed'], summary['exhausted']
        )
    return summary
