"""
Python client for the databyter REST API.

One method per endpoint, each returning the decoded JSON body. Responses
outside the 2xx range raise ApiError carrying the server's error message.
"""
import logging

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx answer from the databyter API"""

    def __init__(self, status_code, message, payload=None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class DatabyterClient:
    def __init__(self, base_url, timeout=10.0, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}"

    def _handle_response(self, response):
        """
        Decode a successful response, or turn an error response into ApiError
        using the {'error': ...} body the API sends when it can.
        """
        if 200 <= response.status_code < 300:
            content_type = response.headers.get('Content-Type', '')
            if content_type.startswith('application/json'):
                return response.json()
            return response.text

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            message = payload.get('error', payload.get('detail', str(payload)))
        else:
            message = response.reason or response.text
        logger.debug(f"Request to {response.url} failed: {response.status_code} {message}")
        raise ApiError(response.status_code, message, payload)

    def _send(self, method, path, body=None, params=None):
        response = self.session.request(
            method,
            self._url(path),
            json=body,
            params=params,
            timeout=self.timeout
        )
        return self._handle_response(response)

    # Projects
    def list_projects(self):
        return self._send('GET', 'projects')

    def get_project(self, project_id):
        return self._send('GET', 'project', params={'id': project_id})['project']

    def save_project(self, draft):
        return self._send('POST', 'saveProject', body=draft)

    def delete_project(self, project_id):
        return self._send('DELETE', 'project', params={'projectId': project_id})

    # Entries
    def list_entries(self, project_id):
        return self._send('GET', 'entries', params={'id': project_id})

    def get_entry(self, project_id, entry_id):
        params = {'projectId': project_id, 'entryId': entry_id}
        return self._send('GET', 'entry', params=params)['entry']

    def add_entry(self, project_id, entry):
        return self._send('POST', 'addEntry', body=entry, params={'id': project_id})

    def update_entry(self, project_id, entry_id, entry):
        params = {'projectId': project_id, 'entryId': entry_id}
        return self._send('PUT', 'entry', body=entry, params=params)

    def delete_entry(self, project_id, entry_id):
        params = {'projectId': project_id, 'entryId': entry_id}
        return self._send('DELETE', 'entry', params=params)

    def entry_history(self, project_id, entry_id):
        params = {'projectId': project_id, 'entryId': entry_id}
        return self._send('GET', 'entryHistory', params=params)

    # Analytics
    def balance(self, project_id):
        return self._send('GET', 'piechartData', params={'projectId': project_id})

    def status(self, project_id):
        return self._send('GET', 'statusPiechart', params={'projectId': project_id})

    def dataset(self, project_id):
        """CSV text of the project's active entries"""
        return self._send('GET', 'dataset', params={'id': project_id})

    # Users
    def check_user(self, username, password):
        body = {'username': username, 'password': password}
        return self._send('POST', 'checkUser', body=body)['canAccess']

    def register_user(self, email, username, password, password_check):
        body = {'email': email, 'username': username, 'password': password, 'passwordCheck': password_check}
        return self._send('POST', 'registerUser', body=body)

    def change_password(self, email, username, password, password_check):
        body = {'email': email, 'username': username, 'password': password, 'passwordCheck': password_check}
        return self._send('PUT', 'changePassword', body=body)
