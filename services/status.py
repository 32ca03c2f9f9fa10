"""
services/status.py - Report card lifecycle

draft -> finalized -> published, with the back-transitions schools need
when a finalized or published card has to be corrected.
"""

import logging
from datetime import datetime

from extensions import db
from models import ReportCard
from services.audit import log_audit
from services.report_cards import rank_class_quietly, regrade_report_card

logger = logging.getLogger(__name__)

STATUSES = ('draft', 'finalized', 'published')

ALLOWED_TRANSITIONS = {
    'draft': ('finalized',),
    'finalized': ('draft', 'published'),
    'published': ('draft', 'finalized'),
}


class InvalidStatusTransition(ValueError):
    """Raised when a report card is asked to move to a status it can't reach"""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        self.allowed = ALLOWED_TRANSITIONS.get(current, ())
        allowed = ', '.join(self.allowed) or 'none'
        super().__init__(
            f"Cannot change report card status from '{current}' to '{requested}'. "
            f"Allowed: {allowed}"
        )


def check_transition(current, requested):
    if requested not in STATUSES or requested not in ALLOWED_TRANSITIONS.get(current, ()):
        raise InvalidStatusTransition(current, requested)


def update_report_card_status(report_card_id, new_status, user_id=None):
    """
    Move a report card to a new status.

    Finalizing recomputes the card and the class positions first, so the
    locked card reflects the latest scores. Asking for the current status
    changes nothing.

    Returns:
        {'success': True, 'report_card': card, 'changed': bool}
        or {'success': False, 'message': ...} when the card doesn't exist
    Raises:
        InvalidStatusTransition: the move isn't allowed
    """
    card = db.session.get(ReportCard, report_card_id)
    if card is None:
        return {'success': False, 'message': f'Report card {report_card_id} not found'}

    new_status = (new_status or '').strip().lower()
    old_status = card.status

    if new_status == old_status:
        return {'success': True, 'report_card': card, 'changed': False}

    check_transition(old_status, new_status)

    now = datetime.utcnow()
    if new_status == 'finalized':
        regrade_report_card(card.id, commit=False)
        card.status = 'finalized'
        card.finalized_at = now
        card.published_at = None
        card.locked = True
    elif new_status == 'published':
        card.status = 'published'
        card.published_at = now
        card.locked = True
    else:
        card.status = 'draft'
        card.finalized_at = None
        card.published_at = None
        card.locked = False

    db.session.commit()

    if new_status == 'finalized':
        rank_class_quietly(card.class_id, card.term_id)

    logger.info("Report card %s: %s -> %s by user %s", card.id, old_status, new_status, user_id)
    log_audit('status_change', 'report_card', card.id, user_id, {
        'from': old_status,
        'to': new_status,
    })

    return {'success': True, 'report_card': card, 'changed': True}
