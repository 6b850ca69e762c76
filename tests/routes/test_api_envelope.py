import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from carebook.auth.jwt_handler import create_user_token
from carebook.database import get_db
from carebook.main import app

FUTURE_MONDAY = '2030-01-07'


@pytest.fixture
def client(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        session = testing_session_local()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(user) -> dict:
    return {'Authorization': f'Bearer {create_user_token(user)}'}


def test_health(client) -> None:
    assert client.get('/health').json() == {'status': 'ok'}


def test_missing_token_is_wrapped_in_envelope(client) -> None:
    response = client.get('/api/appointments/patient')

    assert response.status_code == 401
    assert response.json() == {'success': False, 'error': 'No authorization header'}
    assert response.headers['www-authenticate'] == 'Bearer'


def test_not_found_is_wrapped_in_envelope(client) -> None:
    response = client.get('/api/doctors/missing')

    assert response.status_code == 404
    assert response.json() == {'success': False, 'error': 'Doctor not found'}


def test_unknown_route_is_wrapped_in_envelope(client) -> None:
    response = client.get('/api/nowhere')

    assert response.status_code == 404
    assert response.json()['success'] is False


def test_request_validation_errors_become_400(client) -> None:
    response = client.post(
        '/api/auth/register',
        json={'first_name': 'Riley', 'last_name': 'Reed', 'email': 'riley@example.com', 'password': 'short'},
    )

    body = response.json()
    assert response.status_code == 400
    assert body['success'] is False
    assert 'password' in body['error']


def test_success_envelope_carries_only_success_and_data(client, doctor) -> None:
    body = client.get(f'/api/doctors/{doctor.id}').json()

    assert set(body) == {'success', 'data'}
    assert body['success'] is True
    assert body['data']['id'] == doctor.id


def test_wrong_role_is_forbidden(client, patient) -> None:
    response = client.get('/api/admin/stats', headers=auth_header(patient))

    assert response.status_code == 403
    assert response.json()['success'] is False


def test_booking_flow_over_http(client, admin, make_user) -> None:
    admin_headers = auth_header(admin)

    category = client.post('/api/categories', json={'name': 'Dermatology'}, headers=admin_headers)
    assert category.status_code == 201
    category_id = category.json()['data']['id']

    created_doctor = client.post(
        '/api/doctors',
        json={
            'first_name': 'Dana',
            'last_name': 'Doctor',
            'email': 'dana@example.com',
            'password': 'password123',
            'category_id': category_id,
            'specialization': 'Skin',
            'experience': 4,
        },
        headers=admin_headers,
    )
    assert created_doctor.status_code == 201
    doctor_id = created_doctor.json()['data']['id']

    doctor_login = client.post('/api/auth/login', json={'email': 'dana@example.com', 'password': 'password123'})
    doctor_headers = {'Authorization': f"Bearer {doctor_login.json()['data']['token']}"}
    window = client.post(
        '/api/schedules',
        json={'day': FUTURE_MONDAY, 'start_time': '09:00', 'end_time': '10:00'},
        headers=doctor_headers,
    )
    assert window.status_code == 201
    assert window.json()['data']['start_time'] == '09:00'

    registered = client.post(
        '/api/auth/register',
        json={'first_name': 'Pat', 'last_name': 'Patient', 'email': 'pat@example.com', 'password': 'password123'},
    )
    assert registered.status_code == 201
    patient_headers = {'Authorization': f"Bearer {registered.json()['data']['token']}"}

    def slots():
        response = client.get(f'/api/schedules/doctor/{doctor_id}/slots', params={'start': FUTURE_MONDAY, 'days': 1})
        return [(slot['time'], slot['available']) for slot in response.json()['data'][0]['slots']]

    assert slots() == [('09:00', True), ('09:30', True)]

    booking = {'doctor_id': doctor_id, 'date': FUTURE_MONDAY, 'start_time': '09:30'}
    booked = client.post('/api/appointments', json=booking, headers=patient_headers)
    assert booked.status_code == 201
    appointment = booked.json()['data']
    assert appointment['status'] == 'pending'
    assert appointment['end_time'] == '10:00'
    assert slots() == [('09:00', True), ('09:30', False)]

    other_headers = auth_header(make_user(email='late@example.com'))
    conflict = client.post('/api/appointments', json=booking, headers=other_headers)
    assert conflict.status_code == 400
    assert conflict.json() == {'success': False, 'error': 'Time slot is not available'}

    confirmed = client.put(
        f"/api/appointments/{appointment['id']}",
        json={'status': 'confirmed'},
        headers=doctor_headers,
    )
    assert confirmed.json()['data']['status'] == 'confirmed'

    stats = client.get('/api/patient/stats', headers=patient_headers).json()['data']
    assert stats['totalAppointments'] == 1
    assert stats['upcomingAppointments'] == 1

    cancelled = client.delete(f"/api/appointments/{appointment['id']}", headers=patient_headers)
    assert cancelled.json()['data']['status'] == 'cancelled'
    assert slots() == [('09:00', True), ('09:30', True)]

    reverted = client.put(
        f"/api/appointments/{appointment['id']}",
        json={'status': 'confirmed'},
        headers=doctor_headers,
    )
    assert reverted.status_code == 400
    assert reverted.json()['error'] == 'Cannot change appointment status from cancelled to confirmed.'
