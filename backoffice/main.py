from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from backoffice.logging_config import configure_logging
from backoffice.routers import auth, cash, inventory, users
from backoffice.security.csrf import install_csrf_cookie_middleware
from backoffice.security.headers import install_security_headers
from backoffice.security.sessions import install_auth_session_middleware

configure_logging()

app = FastAPI(title='Cash Office Back Office')

install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)
# Outermost, so early auth rejections carry the headers too.
install_security_headers(app)

app.include_router(auth.router)
app.include_router(cash.router)
app.include_router(inventory.router)
app.include_router(users.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
