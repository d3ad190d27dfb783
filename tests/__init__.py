"""
Test environment. Runs before any ``app`` import: app.config builds its
Settings at import time and app.database builds its engine from them.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="session-authority-tests-")

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'app.db')}"
os.environ["JWT_SECRET"] = "test-secret-do-not-use-in-production"
os.environ["JWT_PREVIOUS_SECRETS"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_ENABLED"] = "true"
os.environ["EXPOSE_DEV_TOKENS"] = "false"
os.environ["APP_URL"] = "http://testserver"
