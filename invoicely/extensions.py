"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit — we apply per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Imports lazily to avoid circular deps."""
    from invoicely.models.user import User

    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    """JSON API: answer 401 instead of redirecting to a login page."""
    from invoicely.errors import Unauthorized

    raise Unauthorized("Authentication required.")
