# devlog/forms/login_form.py

from flask_wtf import FlaskForm
from wtforms import BooleanField, StringField, PasswordField, SubmitField
from wtforms.validators import DataRequired, Email, Length

class LoginForm(FlaskForm):
    email = StringField(
        'Email',
        validators=[
            DataRequired(message="El email es obligatorio"),
            Email(message="Email inválido"),
            Length(max=120),
        ]
    )
    password = PasswordField(
        'Contraseña',
        validators=[DataRequired(message="La contraseña es obligatoria")]
    )
    # Sesión persistente (PERMANENT_SESSION_LIFETIME)
    remember = BooleanField('Recordarme', default=False)
    submit = SubmitField('Entrar al diario')
