"""
Authenticated calls to the Todo API with the provider access token as Bearer credential.
"""
import logging

import httpx

from todo_auth.errors import Unauthorized
from todo_web.guard import AuthGuard

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Todo API answered with a non-2xx status other than 401."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class TodoApiClient:
    def __init__(self, base_url: str, guard: AuthGuard, http: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.guard = guard
        self._http = http

    async def request(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        """
        Await a valid credential (refreshing first if needed), then send the request.
        No credential, or a 401 from the API, signs the user out and raises Unauthorized.
        """
        token = await self.guard.get_valid_credential()
        if token is None:
            raise Unauthorized("Not signed in")
        r = await self._http.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        )
        if r.status_code == 401:
            logger.info("API rejected the access token; signing out")
            self.guard.sign_out()
            raise Unauthorized("API rejected the access token")
        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = None
            message = body.get("error", r.text) if isinstance(body, dict) else r.text
            raise ApiError(r.status_code, str(message))
        return r

    async def list_todos(self) -> list[dict]:
        return (await self.request("GET", "/api/todos")).json()

    async def create_todo(self, text: str) -> dict:
        return (await self.request("POST", "/api/todos", json={"text": text})).json()

    async def update_todo(self, todo_id: int, *, text: str | None = None, completed: bool | None = None) -> dict:
        body = {}
        if text is not None:
            body["text"] = text
        if completed is not None:
            body["completed"] = completed
        return (await self.request("PATCH", f"/api/todos/{todo_id}", json=body)).json()

    async def delete_todo(self, todo_id: int) -> None:
        await self.request("DELETE", f"/api/todos/{todo_id}")
