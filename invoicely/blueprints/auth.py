"""Auth blueprint — /api/auth/*

Minimal JSON session auth: register, login, logout, current user.
New users have no tenant until they POST /api/onboarding.
"""

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from invoicely.blueprints.common import json_body
from invoicely.errors import Conflict, Unauthorized, ValidationError
from invoicely.extensions import db, limiter
from invoicely.models.user import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute", methods=["POST"])
def register():
    data = json_body()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()

    # --- Validation ---
    errors = []
    if not email:
        errors.append("Email is required.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if errors:
        raise ValidationError(" ".join(errors))

    if User.query.filter_by(email=email).first():
        raise Conflict("An account with this email already exists.")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name or None,
    )
    db.session.add(user)
    db.session.commit()

    login_user(user)
    logger.info(f"Registered user {email}")
    return jsonify({"user": user.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute", methods=["POST"])
def login():
    data = json_body()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        raise Unauthorized("Invalid email or password.")
    if not user.is_active:
        raise Unauthorized("This account has been disabled.")

    login_user(user, remember=bool(data.get("remember")))
    return jsonify({"user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    body = {"user": current_user.to_dict()}
    if current_user.tenant is not None:
        body["tenant"] = current_user.tenant.to_dict()
    return jsonify(body)
