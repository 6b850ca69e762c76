from datetime import date, datetime, timedelta, timezone

import pytest

from carebook.auth.jwt_handler import create_access_token
from carebook.client import ApiError, ApiSession, CareBookClient, SessionExpired

BASE_URL = 'http://api.test'
MONDAY = date(2024, 6, 10)


class FakeResponse:
    def __init__(self, status_code: int, body, reason: str = '') -> None:
        self.status_code = status_code
        self._body = body
        self.reason = reason

    def json(self):
        if self._body is None:
            raise ValueError('No JSON body')
        return self._body


class FakeHttp:
    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append({'method': method, 'url': url, 'headers': headers, **kwargs})
        return self.routes[(method, url)]


def ok(data, status_code: int = 200) -> FakeResponse:
    return FakeResponse(status_code, {'success': True, 'data': data})


def logged_in_session(minutes: int = 60, role: str = 'patient') -> ApiSession:
    token = create_access_token(subject='user-1', claims={'role': role}, expires_minutes=minutes)
    return ApiSession.from_token(BASE_URL, token, user={'id': 'user-1', 'role': role})


def test_from_token_reads_expiry_claim() -> None:
    session = logged_in_session(minutes=30)

    assert session.is_authenticated
    remaining = session.expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=28) < remaining <= timedelta(minutes=30)
    assert session.is_expired() is False
    assert session.is_expired(now=session.expires_at) is True


def test_logged_out_session_drops_credentials() -> None:
    session = logged_in_session().logged_out()

    assert session.is_authenticated is False
    assert session.user is None
    assert session.base_url == BASE_URL


def test_login_opens_session_from_returned_token() -> None:
    token = create_access_token(subject='user-1')
    http = FakeHttp({
        ('POST', f'{BASE_URL}/api/auth/login'): ok({'id': 'user-1', 'role': 'patient', 'token': token}),
    })
    client = CareBookClient(ApiSession(base_url=BASE_URL), http=http)

    user = client.login('pat@example.com', 'password123')

    assert user == {'id': 'user-1', 'role': 'patient'}
    assert client.session.token == token
    assert http.calls[0]['json'] == {'email': 'pat@example.com', 'password': 'password123'}
    assert 'Authorization' not in http.calls[0]['headers']


def test_authenticated_request_sends_bearer_token() -> None:
    session = logged_in_session()
    http = FakeHttp({('GET', f'{BASE_URL}/api/appointments/patient'): ok([])})
    client = CareBookClient(session, http=http)

    assert client.my_appointments() == []
    assert http.calls[0]['headers']['Authorization'] == f'Bearer {session.token}'


def test_expired_session_is_rejected_before_dispatch() -> None:
    http = FakeHttp({})
    client = CareBookClient(logged_in_session(minutes=-5), http=http)

    with pytest.raises(SessionExpired) as exception_info:
        client.cancel('appointment-1')

    assert exception_info.value.status_code == 401
    assert http.calls == []


def test_anonymous_session_cannot_call_protected_endpoints() -> None:
    http = FakeHttp({})
    client = CareBookClient(ApiSession(base_url=BASE_URL), http=http)

    with pytest.raises(ApiError) as exception_info:
        client.book('doctor-1', MONDAY, '09:30')

    assert exception_info.value.status_code == 401
    assert http.calls == []


def test_logout_clears_session_locally() -> None:
    client = CareBookClient(logged_in_session(), http=FakeHttp({}))

    client.logout()

    assert client.session.is_authenticated is False


def test_error_envelope_raises_api_error() -> None:
    http = FakeHttp({
        ('POST', f'{BASE_URL}/api/appointments'): FakeResponse(
            400, {'success': False, 'error': 'Time slot is not available'}
        ),
    })
    client = CareBookClient(logged_in_session(), http=http)

    with pytest.raises(ApiError) as exception_info:
        client.book('doctor-1', MONDAY, '09:30:45', notes='Checkup')

    assert exception_info.value.status_code == 400
    assert exception_info.value.message == 'Time slot is not available'
    assert http.calls[0]['json'] == {
        'doctor_id': 'doctor-1',
        'date': '2024-06-10',
        'start_time': '09:30',
        'notes': 'Checkup',
    }


def test_non_json_failure_uses_reason_phrase() -> None:
    http = FakeHttp({('GET', f'{BASE_URL}/api/categories'): FakeResponse(502, None, reason='Bad Gateway')})
    client = CareBookClient(ApiSession(base_url=BASE_URL), http=http)

    with pytest.raises(ApiError) as exception_info:
        client.list_categories()

    assert exception_info.value.message == 'Bad Gateway'


def test_available_days_computes_slots_from_server_data() -> None:
    http = FakeHttp({
        ('GET', f'{BASE_URL}/api/schedules/doctor/doctor-1/available'): ok([
            {'doctor_id': 'doctor-1', 'day': '2024-06-10', 'start_time': '09:00', 'end_time': '10:00', 'is_available': True},
        ]),
        ('GET', f'{BASE_URL}/api/appointments/doctor/doctor-1'): ok([
            {'doctor_id': 'doctor-1', 'date': '2024-06-10', 'start_time': '09:00', 'status': 'confirmed'},
            {'doctor_id': 'doctor-1', 'date': '2024-06-10', 'start_time': '09:30', 'status': 'cancelled'},
        ]),
    })
    client = CareBookClient(ApiSession(base_url=BASE_URL), http=http)

    days = client.available_days('doctor-1', start=MONDAY, days=2)

    assert [day.date for day in days] == [MONDAY, date(2024, 6, 11)]
    assert [(slot.time, slot.available) for slot in days[0].slots] == [('09:00', False), ('09:30', True)]
    assert days[1].slots == []


def test_stats_path_follows_session_role() -> None:
    http = FakeHttp({('GET', f'{BASE_URL}/api/doctor/stats'): ok({'totalAppointments': 3})})
    client = CareBookClient(logged_in_session(role='doctor'), http=http)

    assert client.stats() == {'totalAppointments': 3}
    with pytest.raises(ApiError):
        client.stats('superuser')
