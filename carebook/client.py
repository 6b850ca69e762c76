"""HTTP client for the CareBook API.

Authentication state lives in an explicit :class:`ApiSession` handed to the
client rather than in process-wide storage, and token expiry is checked
before any authenticated request leaves the process.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any

import jwt
import requests as http_requests

from carebook.core import config
from carebook.scheduling.availability import DaySchedule, compute_day_schedules, format_clock, to_minute

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f'{status_code}: {message}')
        self.status_code = status_code
        self.message = message


class SessionExpired(ApiError):
    def __init__(self) -> None:
        super().__init__(401, 'Session expired. Please log in again.')


@dataclass(frozen=True)
class ApiSession:
    base_url: str
    token: str | None = None
    expires_at: datetime | None = None
    user: dict | None = None

    @classmethod
    def from_token(cls, base_url: str, token: str, user: dict | None = None) -> 'ApiSession':
        # The server verifies the signature; the client only needs the expiry.
        claims = jwt.decode(token, options={'verify_signature': False})
        expires_at = None
        if claims.get('exp') is not None:
            expires_at = datetime.fromtimestamp(claims['exp'], tz=timezone.utc)
        return cls(base_url=base_url, token=token, expires_at=expires_at, user=user)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def logged_out(self) -> 'ApiSession':
        return replace(self, token=None, expires_at=None, user=None)


class CareBookClient:
    def __init__(self, session: ApiSession, http: Any = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.session = session
        self.http = http or http_requests.Session()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.session.base_url.rstrip('/')}/api/{path.lstrip('/')}"

    def _headers(self, authenticated: bool) -> dict:
        headers = {'Content-Type': 'application/json'}
        if not authenticated:
            return headers
        if not self.session.is_authenticated:
            raise ApiError(401, 'Not logged in.')
        if self.session.is_expired():
            raise SessionExpired()
        headers['Authorization'] = f'Bearer {self.session.token}'
        return headers

    def request(self, method: str, path: str, *, authenticated: bool = False, **kwargs) -> Any:
        headers = self._headers(authenticated)
        response = self.http.request(method, self._url(path), headers=headers, timeout=self.timeout, **kwargs)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get('success', False):
            message = body.get('error') or response.reason or 'Request failed'
            logger.debug('%s %s failed with %s: %s', method, path, response.status_code, message)
            raise ApiError(response.status_code, str(message))

        return body.get('data')

    def _open_session(self, data: dict) -> dict:
        user = {key: value for key, value in data.items() if key != 'token'}
        self.session = ApiSession.from_token(self.session.base_url, data['token'], user=user)
        return user

    def login(self, email: str, password: str) -> dict:
        data = self.request('POST', 'auth/login', json={'email': email, 'password': password})
        return self._open_session(data)

    def register(self, first_name: str, last_name: str, email: str, password: str) -> dict:
        data = self.request(
            'POST',
            'auth/register',
            json={'first_name': first_name, 'last_name': last_name, 'email': email, 'password': password},
        )
        return self._open_session(data)

    def logout(self) -> None:
        self.session = self.session.logged_out()

    def list_doctors(self, category_id: str | None = None) -> list[dict]:
        if category_id:
            return self.request('GET', f'doctors/category/{category_id}')
        return self.request('GET', 'doctors')

    def get_doctor(self, doctor_id: str) -> dict:
        return self.request('GET', f'doctors/{doctor_id}')

    def list_categories(self) -> list[dict]:
        return self.request('GET', 'categories')

    def available_days(
        self,
        doctor_id: str,
        start: date | None = None,
        days: int | None = None,
    ) -> list[DaySchedule]:
        windows = self.request('GET', f'schedules/doctor/{doctor_id}/available')
        appointments = self.request('GET', f'appointments/doctor/{doctor_id}')
        return compute_day_schedules(doctor_id, windows, appointments, start or date.today(), days)

    def book(self, doctor_id: str, day: date, start_time: str, notes: str | None = None) -> dict:
        payload = {
            'doctor_id': doctor_id,
            'date': day.isoformat(),
            'start_time': format_clock(to_minute(start_time)),
        }
        if notes:
            payload['notes'] = notes
        return self.request('POST', 'appointments', authenticated=True, json=payload)

    def my_appointments(self) -> list[dict]:
        role = (self.session.user or {}).get('role')
        path = 'appointments/doctor' if role == 'doctor' else 'appointments/patient'
        return self.request('GET', path, authenticated=True)

    def update_status(self, appointment_id: str, status: str, notes: str | None = None) -> dict:
        payload = {'status': status}
        if notes is not None:
            payload['notes'] = notes
        return self.request('PUT', f'appointments/{appointment_id}', authenticated=True, json=payload)

    def cancel(self, appointment_id: str) -> dict:
        return self.request('DELETE', f'appointments/{appointment_id}', authenticated=True)

    def stats(self, role: str | None = None) -> dict:
        role = role or (self.session.user or {}).get('role')
        if role not in ('admin', 'doctor', 'patient'):
            raise ApiError(400, f'Unknown role: {role}')
        return self.request('GET', f'{role}/stats', authenticated=True)


def default_session() -> ApiSession:
    return ApiSession(base_url=f'http://localhost:{config.API_PORT}')
