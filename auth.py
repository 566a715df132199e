from functools import wraps

from flask import abort, redirect, session, url_for

from models import db, Role, User


def current_user():
    """Return the logged-in user, or None for anonymous visitors."""
    user_id = session.get('user_id')
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None:
        # account was removed while the session was alive
        session.clear()
    return user


def login_user(user):
    session.clear()
    session['user_id'] = user.id


def role_required(*roles):
    """Only let users with one of ``roles`` through.

    Anonymous visitors are sent to the login page, logged-in users with another
    role get a 403. The loaded user is passed to the view as its first argument.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return redirect(url_for('login', error='login_required'))
            if user.role not in roles:
                abort(403)
            return f(user, *args, **kwargs)
        return decorated
    return decorator


admin_required = role_required(Role.ADMIN)
member_required = role_required(Role.USER)
