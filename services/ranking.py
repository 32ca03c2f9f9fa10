"""
services/ranking.py - Class positions

Positions are always a full recompute over the current report cards of a
class/term, so running rank_class twice (or concurrently) converges.
"""

import logging

from extensions import db
from models import ReportCard, Student

logger = logging.getLogger(__name__)

POSITION_BASES = ('average', 'total')
SCORE_TOLERANCE = 1e-9


def compute_positions(scores):
    """
    Competition ranking: ties share a position, the next distinct score
    takes its 1-based index. [90, 90, 80] -> 1, 1, 3.

    Args:
        scores: iterable of (key, score) pairs; None scores count as 0
    Returns:
        dict of key -> position
    """
    ordered = sorted(
        ((key, float(score or 0)) for key, score in scores),
        key=lambda pair: pair[1],
        reverse=True
    )

    positions = {}
    current_pos = 0
    previous_score = None
    for index, (key, score) in enumerate(ordered, start=1):
        if previous_score is None or abs(score - previous_score) > SCORE_TOLERANCE:
            current_pos = index
        positions[key] = current_pos
        previous_score = score
    return positions


def get_position_basis():
    """
    Ranking basis: 'average' or 'total'
    Priority: Database (SystemSettings) > Config > 'average'
    """
    from config import Config

    basis = Config.get_setting('position_calculation_basis', 'POSITION_CALCULATION_BASIS', 'average')
    basis = str(basis or '').strip().lower()
    if basis not in POSITION_BASES:
        logger.warning("Unknown position basis %r, using 'average'", basis)
        return 'average'
    return basis


def rank_class(class_id, term_id):
    """
    Assign position and total_students_in_class to every report card of
    active students in this class and term. Commits.

    Returns:
        dict of report_card_id -> position
    """
    basis = get_position_basis()

    cards = ReportCard.query.join(Student, ReportCard.student_id == Student.id).filter(
        ReportCard.class_id == class_id,
        ReportCard.term_id == term_id,
        Student.is_active.is_(True)
    ).all()

    if not cards:
        logger.info("rank_class: no report cards for class %s term %s", class_id, term_id)
        return {}

    if basis == 'total':
        scores = [(card.id, card.total_score) for card in cards]
    else:
        scores = [(card.id, card.average_percentage) for card in cards]

    positions = compute_positions(scores)
    total = len(cards)
    for card in cards:
        card.position = positions[card.id]
        card.total_students_in_class = total

    db.session.commit()
    logger.info("Ranked %d report cards for class %s term %s by %s", total, class_id, term_id, basis)
    return positions
