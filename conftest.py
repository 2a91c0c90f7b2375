import pytest


@pytest.fixture(autouse=True)
def _test_runtime_settings(settings):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False

    # Secure cookies interfere with session auth over plain http
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Deliver notifications in-process so mailoutbox sees them
    settings.NOTIFICATIONS_ENABLED = True
    settings.NOTIFICATIONS_ASYNC = False
