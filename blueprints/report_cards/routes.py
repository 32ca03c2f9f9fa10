"""
blueprints/report_cards/routes.py - Report Card Blueprint
JSON endpoints for score sync, overrides, generation, lifecycle and ranking
"""

import logging
from functools import wraps

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from extensions import db
from models import ReportCard, ReportCardItem
from services.ranking import rank_class
from services.report_cards import (
    clear_item_override, generate_report_cards_for_class,
    get_report_card_with_items, override_item_score, sync_exam_score
)
from services.status import update_report_card_status

logger = logging.getLogger(__name__)

# Initialize the blueprint for report card routes
report_cards_bp = Blueprint('report_cards', __name__)

STAFF_ROLES = ('teacher', 'admin', 'super_admin')


def staff_required(f):
    """
    Decorator to ensure only teachers and admins can access the route
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_user.role not in STAFF_ROLES:
            return jsonify({'success': False, 'error': 'Access denied. Staff only.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Ensure only admins can access the route"""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin():
            return jsonify({'success': False, 'error': 'Access denied. Admins only.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _json_body():
    return request.get_json(silent=True) or {}


@report_cards_bp.route('/sync', methods=['POST'])
@staff_required
def sync_score():
    """
    API endpoint to push one exam score onto a report card
    Body: {student_id, exam_id, score, max_score?}
    """
    data = _json_body()
    student_id = data.get('student_id')
    exam_id = data.get('exam_id')

    if student_id is None or exam_id is None or data.get('score') is None:
        return jsonify({
            'success': False,
            'error': 'student_id, exam_id and score are required'
        }), 400

    result = sync_exam_score(
        student_id, exam_id, data.get('score'), data.get('max_score'),
        sync_type='manual_sync', triggered_by=current_user.id
    )
    return jsonify(result), (200 if result['success'] else 422)


@report_cards_bp.route('/items/<int:item_id>/override', methods=['POST'])
@staff_required
def override_item(item_id):
    """
    API endpoint to manually set an item's scores
    Body: any of test_score, test_max_score, exam_score, exam_max_score, teacher_remarks
    """
    try:
        result = override_item_score(item_id, _json_body(), current_user.id)
        if not result['success']:
            return jsonify(result), 404
        return jsonify(result)

    except ValueError as e:
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': str(e)
        }), 400
    except Exception:
        db.session.rollback()
        logger.exception("Override failed for item %s", item_id)
        return jsonify({
            'success': False,
            'error': 'An error occurred while overriding the score'
        }), 500


@report_cards_bp.route('/items/<int:item_id>/override', methods=['DELETE'])
@staff_required
def remove_override(item_id):
    """API endpoint to clear an override and restore scores from exam results"""
    db.get_or_404(ReportCardItem, item_id)

    try:
        result = clear_item_override(item_id, current_user.id)
        return jsonify(result)
    except Exception:
        db.session.rollback()
        logger.exception("Clearing override failed for item %s", item_id)
        return jsonify({
            'success': False,
            'error': 'An error occurred while removing the override'
        }), 500


@report_cards_bp.route('/classes/<int:class_id>/generate', methods=['POST'])
@admin_required
def generate_for_class(class_id):
    """
    API endpoint to create or refresh report cards for a whole class
    Body: {term_id, grading_scale?}
    """
    data = _json_body()
    term_id = data.get('term_id')
    if term_id is None:
        return jsonify({'success': False, 'error': 'term_id is required'}), 400

    summary = generate_report_cards_for_class(
        class_id, term_id, data.get('grading_scale'), current_user.id
    )
    return jsonify(summary), (200 if summary['success'] else 404)


@report_cards_bp.route('/<int:report_card_id>/status', methods=['POST'])
@admin_required
def change_status(report_card_id):
    """
    API endpoint to move a report card through draft/finalized/published
    Body: {status}
    """
    new_status = _json_body().get('status')
    if not new_status:
        return jsonify({'success': False, 'error': 'status is required'}), 400

    try:
        result = update_report_card_status(report_card_id, new_status, current_user.id)
        if not result['success']:
            return jsonify(result), 404

        card = result['report_card']
        return jsonify({
            'success': True,
            'changed': result['changed'],
            'report_card': get_report_card_with_items(card.id)
        })

    except ValueError as e:
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': str(e)
        }), 400
    except Exception:
        db.session.rollback()
        logger.exception("Status change failed for report card %s", report_card_id)
        return jsonify({
            'success': False,
            'error': 'An error occurred while updating the status'
        }), 500


@report_cards_bp.route('/<int:report_card_id>', methods=['GET'])
@login_required
def view_report_card(report_card_id):
    """API endpoint to get a report card with its subjects and signatures"""
    card = get_report_card_with_items(report_card_id)
    if card is None:
        return jsonify({'success': False, 'error': 'Report card not found'}), 404

    return jsonify({'success': True, 'report_card': card})


@report_cards_bp.route('/classes/<int:class_id>/rank', methods=['POST'])
@staff_required
def rank(class_id):
    """
    API endpoint to recompute class positions for a term
    Body: {term_id}
    """
    term_id = _json_body().get('term_id')
    if term_id is None:
        return jsonify({'success': False, 'error': 'term_id is required'}), 400

    positions = rank_class(class_id, term_id)
    cards = ReportCard.query.filter(ReportCard.id.in_(list(positions))).all() if positions else []

    return jsonify({
        'success': True,
        'ranked': len(positions),
        'positions': [
            {'report_card_id': c.id, 'student_id': c.student_id, 'position': c.position}
            for c in sorted(cards, key=lambda c: (c.position, c.id))
        ]
    })
