"""
blueprints/admin/routes.py - Admin Blueprint
Report card maintenance and grading settings endpoints
"""

import logging
from functools import wraps

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from config import Config
from models import SystemSettings
from services.grading import AGGREGATION_MODES, get_aggregation_mode, get_system_weights
from services.maintenance import (
    add_missing_subjects_to_report_cards, cleanup_report_cards_for_classes, cleanup_report_cards_for_mapping,
    retry_failed_syncs, sync_all_missing_exam_scores, sync_exam_results_to_report_cards
)
from services.ranking import POSITION_BASES, get_position_basis

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

GRADING_SETTING_KEYS = ('test_weight', 'exam_weight', 'position_calculation_basis', 'score_aggregation_mode')


def admin_required(f):
    """Ensure only admins can access the route"""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin():
            return jsonify({'success': False, 'error': 'Access denied. Admins only.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _class_ids_from_request():
    """Read a non-empty list of integer class ids from the JSON body"""
    data = request.get_json(silent=True) or {}
    class_ids = data.get('class_ids')
    if not isinstance(class_ids, list) or not class_ids:
        raise ValueError('class_ids must be a non-empty list')
    try:
        return [int(class_id) for class_id in class_ids]
    except (TypeError, ValueError):
        raise ValueError('class_ids must contain integers')


@admin_bp.route('/report-cards/cleanup', methods=['POST'])
@admin_required
def cleanup_report_cards():
    """Remove stale subjects and add missing ones for the given classes"""
    try:
        class_ids = _class_ids_from_request()
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    summary = cleanup_report_cards_for_classes(class_ids)
    logger.info("Admin %s ran report card cleanup for classes %s", current_user.email, class_ids)
    return jsonify({'success': not summary['errors'], **summary})


@admin_bp.route('/classes/<int:class_id>/subject-mappings/cleanup', methods=['POST'])
@admin_required
def cleanup_after_mapping_change(class_id):
    """Re-sync the report cards of students a changed subject mapping applies to"""
    data = request.get_json(silent=True) or {}
    department = data.get('department')
    summary = cleanup_report_cards_for_mapping(class_id, department)
    logger.info("Admin %s ran mapping cleanup for class %s department %s", current_user.email, class_id, department)
    return jsonify({'success': not summary['errors'], **summary})


@admin_bp.route('/report-cards/add-missing-subjects', methods=['POST'])
@admin_required
def add_missing_subjects():
    """Add newly mapped subjects to existing report cards"""
    try:
        class_ids = _class_ids_from_request()
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    summary = add_missing_subjects_to_report_cards(class_ids)
    return jsonify({'success': not summary['errors'], **summary})


@admin_bp.route('/report-cards/sync-missing-scores', methods=['POST'])
@admin_required
def sync_missing_scores():
    """Sync exam results that never reached a report card (current term by default)"""
    data = request.get_json(silent=True) or {}
    summary = sync_all_missing_exam_scores(data.get('term_id'))
    return jsonify({'success': not summary['errors'], **summary})


@admin_bp.route('/exams/<int:exam_id>/sync', methods=['POST'])
@admin_required
def sync_exam(exam_id):
    """Push all results of one exam onto report cards"""
    summary = sync_exam_results_to_report_cards(exam_id)
    return jsonify({'success': not summary['errors'], **summary})


@admin_bp.route('/syncs/retry', methods=['POST'])
@admin_required
def retry_syncs():
    """Retry failed score syncs whose back-off has elapsed"""
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get('limit', 50))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'limit must be an integer'}), 400

    summary = retry_failed_syncs(limit=limit)
    return jsonify({'success': True, **summary})


@admin_bp.route('/settings/grading', methods=['GET', 'POST'])
@admin_required
def grading_settings():
    """
    Get or update the school-wide grading settings
    POST body: {action: 'update', test_weight?, exam_weight?, position_calculation_basis?,
                score_aggregation_mode?}
               {action: 'reset_to_config'}
    """
    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        action = data.get('action', 'update')

        if action == 'reset_to_config':
            # Delete settings to revert to config values
            for key in GRADING_SETTING_KEYS:
                SystemSettings.delete_setting(key)
            logger.info("Admin %s reset grading settings to config", current_user.email)

        elif action == 'update':
            updates = {}
            for key in ('test_weight', 'exam_weight'):
                if key in data:
                    try:
                        value = float(data[key])
                    except (TypeError, ValueError):
                        return jsonify({'success': False, 'error': f'{key} must be a number'}), 400
                    if value < 0:
                        return jsonify({'success': False, 'error': f'{key} cannot be negative'}), 400
                    updates[key] = f'{value:g}'

            if 'position_calculation_basis' in data:
                basis = str(data['position_calculation_basis']).strip().lower()
                if basis not in POSITION_BASES:
                    return jsonify({
                        'success': False,
                        'error': f"position_calculation_basis must be one of {', '.join(POSITION_BASES)}"
                    }), 400
                updates['position_calculation_basis'] = basis

            if 'score_aggregation_mode' in data:
                mode = str(data['score_aggregation_mode']).strip().lower()
                if mode not in AGGREGATION_MODES:
                    return jsonify({
                        'success': False,
                        'error': f"score_aggregation_mode must be one of {', '.join(AGGREGATION_MODES)}"
                    }), 400
                updates['score_aggregation_mode'] = mode

            for key, value in updates.items():
                SystemSettings.set_setting(key, value, current_user.email)
            logger.info("Admin %s updated grading settings: %s", current_user.email, updates)

        else:
            return jsonify({'success': False, 'error': f'Unknown action: {action}'}), 400

    weights = get_system_weights()
    stored = {key: SystemSettings.get_setting(key) for key in GRADING_SETTING_KEYS}

    return jsonify({
        'success': True,
        'test_weight': weights['test_weight'],
        'exam_weight': weights['exam_weight'],
        'position_calculation_basis': get_position_basis(),
        'score_aggregation_mode': get_aggregation_mode(),
        'default_grading_scale': Config.get_setting('default_grading_scale', 'DEFAULT_GRADING_SCALE', 'standard'),
        'is_manual': {key: value is not None for key, value in stored.items()},
    })
