import pytest

from models import ReportCard
from services.grading import get_system_weights


@pytest.fixture
def math_exam(school, factory):
    return factory.exam(school['math'], school['class'], school['term'], 'exam')


@pytest.fixture
def synced(school, math_exam):
    from services.report_cards import sync_exam_score
    return sync_exam_score(school['science_student'].id, math_exam.id, 50, 100)


def test_requires_login(client, app):
    resp = client.get('/report-cards/1')
    assert resp.status_code == 401
    assert resp.get_json() == {'success': False, 'error': 'Authentication required'}


def test_students_cannot_sync(client, login, school, math_exam):
    login(school['science_student'].user)

    resp = client.post('/report-cards/sync', json={
        'student_id': school['science_student'].id, 'exam_id': math_exam.id, 'score': 99
    })

    assert resp.status_code == 403


def test_sync_route(client, login, factory, school, math_exam):
    login(factory.teacher())

    resp = client.post('/report-cards/sync', json={
        'student_id': school['science_student'].id, 'exam_id': math_exam.id,
        'score': 45, 'max_score': 50
    })

    assert resp.status_code == 200
    data = resp.get_json()
    assert data['success'] is True
    assert data['message'] == 'New report card created. Grade: A+ (90%)'


def test_sync_route_validation_and_failure(client, login, factory, school):
    login(factory.teacher())

    assert client.post('/report-cards/sync', json={'exam_id': 1}).status_code == 400

    resp = client.post('/report-cards/sync', json={
        'student_id': school['science_student'].id, 'exam_id': 31337, 'score': 10
    })
    assert resp.status_code == 422
    assert resp.get_json()['error_code'] == 'EXAM_NOT_FOUND'


def test_override_routes(client, login, factory, synced):
    teacher = login(factory.teacher())
    url = f"/report-cards/items/{synced['report_card_item_id']}/override"

    resp = client.post(url, json={'exam_score': 200, 'exam_max_score': 100})
    assert resp.status_code == 400
    assert 'cannot exceed' in resp.get_json()['error']

    resp = client.post(url, json={'exam_score': 100})
    assert resp.status_code == 200
    item = resp.get_json()['item']
    assert item['is_overridden'] is True
    assert item['overridden_by'] == teacher.id

    resp = client.delete(url)
    assert resp.status_code == 200
    assert resp.get_json()['item']['is_overridden'] is False

    assert client.post('/report-cards/items/9999/override', json={'exam_score': 1}).status_code == 404
    assert client.delete('/report-cards/items/9999/override').status_code == 404


def test_status_route(client, login, factory, synced):
    login(factory.admin())
    url = f"/report-cards/{synced['report_card_id']}/status"

    resp = client.post(url, json={'status': 'published'})
    assert resp.status_code == 400
    assert 'Allowed: finalized' in resp.get_json()['error']

    resp = client.post(url, json={'status': 'finalized'})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['changed'] is True
    assert data['report_card']['status'] == 'finalized'
    assert data['report_card']['locked'] is True

    assert client.post(url, json={}).status_code == 400
    assert client.post('/report-cards/999/status', json={'status': 'finalized'}).status_code == 404


def test_teachers_cannot_change_status(client, login, factory, synced):
    login(factory.teacher())
    resp = client.post(f"/report-cards/{synced['report_card_id']}/status", json={'status': 'finalized'})
    assert resp.status_code == 403


def test_view_report_card(client, login, factory, synced):
    login(factory.teacher())

    resp = client.get(f"/report-cards/{synced['report_card_id']}")
    assert resp.status_code == 200
    card = resp.get_json()['report_card']
    assert card['overall_grade'] == 'F'
    assert len(card['items']) == 3

    assert client.get('/report-cards/5555').status_code == 404


def test_generate_and_rank_routes(client, login, factory, school):
    login(factory.admin())
    class_id = school['class'].id

    assert client.post(f'/report-cards/classes/{class_id}/generate', json={}).status_code == 400

    resp = client.post(f'/report-cards/classes/{class_id}/generate', json={'term_id': school['term'].id})
    assert resp.status_code == 200
    assert resp.get_json()['created'] == 2

    resp = client.post(f'/report-cards/classes/{class_id}/rank', json={'term_id': school['term'].id})
    assert resp.status_code == 200
    assert resp.get_json()['ranked'] == 2
    assert ReportCard.query.count() == 2


def test_admin_maintenance_routes(client, login, factory, school, math_exam):
    login(factory.admin('super_admin'))
    factory.result(math_exam, school['arts_student'], 70, 100)

    assert client.post('/admin/report-cards/cleanup', json={'class_ids': []}).status_code == 400
    assert client.post('/admin/report-cards/cleanup', json={'class_ids': ['x']}).status_code == 400

    resp = client.post('/admin/report-cards/sync-missing-scores', json={})
    assert resp.get_json()['synced'] == 1

    resp = client.post('/admin/report-cards/add-missing-subjects', json={'class_ids': [school['class'].id]})
    assert resp.status_code == 200
    assert resp.get_json()['success'] is True

    resp = client.post('/admin/report-cards/cleanup', json={'class_ids': [school['class'].id]})
    assert resp.get_json()['processed'] == 1

    resp = client.post(f'/admin/exams/{math_exam.id}/sync')
    assert resp.get_json()['synced'] == 1

    resp = client.post('/admin/syncs/retry', json={'limit': 10})
    assert resp.get_json()['attempted'] == 0


def test_teachers_cannot_use_admin_routes(client, login, factory):
    login(factory.teacher())
    assert client.post('/admin/syncs/retry', json={}).status_code == 403


def test_grading_settings_route(client, login, factory):
    login(factory.admin())

    resp = client.post('/admin/settings/grading', json={
        'test_weight': 30, 'exam_weight': 70, 'position_calculation_basis': 'total'
    })
    assert resp.status_code == 200
    data = resp.get_json()
    assert (data['test_weight'], data['exam_weight']) == (30, 70)
    assert data['position_calculation_basis'] == 'total'
    assert data['is_manual']['test_weight'] is True
    assert get_system_weights() == {'test_weight': 30, 'exam_weight': 70}

    bad = client.post('/admin/settings/grading', json={'position_calculation_basis': 'median'})
    assert bad.status_code == 400

    resp = client.post('/admin/settings/grading', json={'score_aggregation_mode': 'average'})
    assert resp.get_json()['score_aggregation_mode'] == 'average'
    assert client.post('/admin/settings/grading', json={'score_aggregation_mode': 'mean'}).status_code == 400

    resp = client.post('/admin/settings/grading', json={'action': 'reset_to_config'})
    assert resp.get_json()['test_weight'] == 40
    assert resp.get_json()['position_calculation_basis'] == 'average'
    assert resp.get_json()['score_aggregation_mode'] == 'last'


def test_unknown_url_is_json_404(client):
    resp = client.get('/nowhere')
    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


def test_mapping_cleanup_route(client, login, factory, school):
    from services.report_cards import generate_report_cards_for_class
    generate_report_cards_for_class(school['class'].id, school['term'].id)
    login(factory.admin())

    resp = client.post(f"/admin/classes/{school['class'].id}/subject-mappings/cleanup", json={'department': 'arts'})

    assert resp.status_code == 200
    data = resp.get_json()
    assert data['success'] is True
    assert data['processed'] == 1
