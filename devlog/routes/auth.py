# devlog/routes/auth.py
from flask import Blueprint, jsonify
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import login_user, logout_user, login_required, current_user

from devlog import db, login_manager
from devlog.errors import NotAuthenticated, ValidationFailure
from devlog.models.user import User
from devlog.forms.login_form import LoginForm
from devlog.forms.register_form import RegisterForm
from devlog.services.session import SessionProvider
from devlog.utils.web import run, session_user

auth_routes = Blueprint("auth", __name__)


def _form_errors(form) -> dict:
    """{campo: primer mensaje} a partir de los errores de WTForms."""
    return {name: msgs[0] for name, msgs in form.errors.items() if msgs}


# La API no redirige a una página de login: responde 401 en JSON
@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify(NotAuthenticated().to_dict()), 401


# ---------- Auth ----------
@auth_routes.route("/register", methods=["POST"])
def register():
    form = RegisterForm()
    if not form.validate_on_submit():
        raise ValidationFailure(_form_errors(form))

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        return jsonify(error_code="user_exists",
                       message="El usuario ya existe. Por favor, inicia sesión."), 409

    user = User(email=email, password=generate_password_hash(form.password.data))
    db.session.add(user)
    db.session.commit()
    return jsonify(user=user.to_dict(), message="Registro exitoso."), 201


@auth_routes.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        raise ValidationFailure(_form_errors(form))

    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if user and check_password_hash(user.password, form.password.data):
        login_user(user, remember=bool(form.remember.data))
        return jsonify(user=user.to_dict()), 200

    return jsonify(error_code="invalid_credentials", message="Credenciales inválidas."), 401


@auth_routes.route("/logout", methods=["POST"])
@login_required
def logout():
    async def _sign_out():
        logout_user()

    session = SessionProvider(on_sign_out=_sign_out)
    session.sign_in(session_user())
    run(session.sign_out())
    return jsonify(message="Sesión cerrada"), 200


@auth_routes.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(user=current_user.to_dict()), 200
