"""
Todo web client (bearer variant).
Runs the authorization code + PKCE flow itself (public client), keeps the provider's
tokens, refreshes them silently and calls the Todo API with Authorization: Bearer.
GET /, /login, /callback, /logout; POST /todos, /todos/{id}/toggle, /todos/{id}/delete. Port 8000.
"""
import html
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from todo_auth.client import OIDCClient
from todo_auth.discovery import MetadataCache
from todo_auth.errors import AuthError, Unauthorized
from todo_auth.flow import LoginAttempt
from todo_auth.keys import KeySetCache
from todo_web import config
from todo_web.api_client import ApiError, TodoApiClient
from todo_web.flow_store import FlowHolder
from todo_web.guard import AuthGuard
from todo_web.token_store import TokenStore

logger = logging.getLogger(__name__)


def build_state(app: FastAPI, http: httpx.AsyncClient, store: TokenStore) -> None:
    """Wire the OIDC client, flow holder, token store, guard and API client onto app.state."""
    metadata = MetadataCache(config.ISSUER, http)
    oidc = OIDCClient(
        issuer=config.ISSUER,
        client_id=config.CLIENT_ID,
        redirect_uri=config.REDIRECT_URI,
        scope=config.SCOPE,
        metadata=metadata,
        keys=KeySetCache(metadata, http),
        http=http,
    )
    guard = AuthGuard(oidc, store, buffer_seconds=config.EXPIRY_BUFFER_SECONDS)
    app.state.oidc = oidc
    app.state.flows = FlowHolder()
    app.state.guard = guard
    app.state.api = TodoApiClient(config.API_URL, guard, http)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as http:
        build_state(app, http, TokenStore(config.TOKEN_STORE_PATH))
        yield


app = FastAPI(title="Todo Web", version="1.0.0", lifespan=lifespan)


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
{body}
</body>
</html>""",
        status_code=status_code,
    )


def _sign_in_page(message: str | None = None, status_code: int = 200) -> HTMLResponse:
    note = f"<p>{html.escape(message)}</p>" if message else ""
    return _page(
        "Todos",
        f"""  <h1>Todos</h1>
  {note}
  <p><a href="/login">Sign in</a> to see the list.</p>""",
        status_code=status_code,
    )


def _unavailable_page() -> HTMLResponse:
    return _page("Todos", '  <h1>Todos</h1>\n  <p>Could not load todos. <a href="/">Retry</a></p>', status_code=502)


def _todo_item(todo: dict) -> str:
    todo_id = int(todo["id"])
    done = bool(todo.get("completed"))
    text = html.escape(str(todo.get("text", "")))
    label = f"<s>{text}</s>" if done else text
    return f"""    <li>
      <form method="post" action="/todos/{todo_id}/toggle" style="display:inline">
        <input type="hidden" name="completed" value="{'false' if done else 'true'}">
        <button type="submit">{'Undo' if done else 'Done'}</button>
      </form>
      {label}
      <form method="post" action="/todos/{todo_id}/delete" style="display:inline">
        <button type="submit">Delete</button>
      </form>
    </li>"""


@app.exception_handler(Unauthorized)
async def unauthorized_handler(request: Request, exc: Unauthorized):
    # Back to the unauthenticated view; no stale identity is rendered
    return RedirectResponse(url="/", status_code=303)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    # Provider unreachable or timed out while refreshing; Unauthorized has its own handler
    logger.warning("Auth backend error on %s: %s: %s", request.url.path, type(exc).__name__, exc)
    return _unavailable_page()


@app.exception_handler(httpx.HTTPError)
async def api_unreachable_handler(request: Request, exc: httpx.HTTPError):
    logger.warning("Todo API unreachable on %s: %s", request.url.path, exc)
    return _unavailable_page()


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return _page(
        "Error",
        f"""  <h1>Request failed</h1>
  <p>{html.escape(str(exc))}</p>
  <p><a href="/">Back</a></p>""",
        status_code=502 if exc.status_code >= 500 else exc.status_code,
    )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "todo_web"}


@app.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Todo list when signed in; otherwise a call to action to sign in."""
    guard: AuthGuard = request.app.state.guard
    if not guard.is_authenticated():
        return _sign_in_page()
    try:
        todos = await request.app.state.api.list_todos()
    except Unauthorized:
        return _sign_in_page("Your session has ended. Please sign in again.")
    except (AuthError, httpx.HTTPError) as e:
        logger.warning("Loading todos failed: %s", e)
        return _unavailable_page()

    user = guard.current_user()
    who = html.escape(user.name or user.email or user.sub) if user else "signed in"
    items = "\n".join(_todo_item(t) for t in todos) or "    <li>Nothing to do.</li>"
    return _page(
        "Todos",
        f"""  <h1>Todos</h1>
  <p>{who} · <a href="/logout">Sign out</a></p>
  <form method="post" action="/todos">
    <input type="text" name="text" placeholder="What needs doing?">
    <button type="submit">Add</button>
  </form>
  <ul>
{items}
  </ul>""",
    )


async def _redirect_to_provider(request: Request, prompt: str | None = None) -> RedirectResponse:
    attempt = LoginAttempt(request.app.state.oidc)
    url = await attempt.begin(use_nonce=False, prompt=prompt)
    request.app.state.flows.put(attempt.flow)
    return RedirectResponse(url=url, status_code=302)


@app.get("/login")
async def login(request: Request):
    """Generate state + PKCE, hold them for the callback, redirect to the provider."""
    try:
        return await _redirect_to_provider(request)
    except AuthError as e:
        logger.error("Cannot start login: %s: %s", type(e).__name__, e)
        return _sign_in_page("Sign-in is unavailable right now. Please try again.", status_code=502)


@app.get("/callback")
async def callback(request: Request):
    """
    Check state (before any network call), exchange the code with the PKCE verifier, store the
    tokens and redirect to a clean URL so a reload cannot replay the single-use code.
    """
    flow = request.app.state.flows.take()
    attempt = LoginAttempt(request.app.state.oidc, flow)
    try:
        result = await attempt.complete(dict(request.query_params), verify_id_token=False)
    except AuthError:
        return _sign_in_page("Sign-in failed. Please try again.", status_code=400)
    request.app.state.guard.store.save(result.tokens)
    return RedirectResponse(url="/", status_code=302)


@app.get("/logout")
async def logout(request: Request):
    """Drop local tokens, then force the provider's login page (prompt=login)."""
    request.app.state.guard.sign_out()
    try:
        return await _redirect_to_provider(request, prompt="login")
    except AuthError as e:
        logger.warning("Re-login redirect unavailable: %s", e)
        return RedirectResponse(url="/", status_code=302)


@app.post("/todos")
async def add_todo(request: Request, text: str = Form("")):
    if text.strip():
        await request.app.state.api.create_todo(text.strip())
    return RedirectResponse(url="/", status_code=303)


@app.post("/todos/{todo_id}/toggle")
async def toggle_todo(request: Request, todo_id: int, completed: str = Form("true")):
    await request.app.state.api.update_todo(todo_id, completed=completed == "true")
    return RedirectResponse(url="/", status_code=303)


@app.post("/todos/{todo_id}/delete")
async def delete_todo(request: Request, todo_id: int):
    await request.app.state.api.delete_todo(todo_id)
    return RedirectResponse(url="/", status_code=303)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "todo_web.main:app",
        host="127.0.0.1",
        port=config.PORT,
        reload=True,
    )
