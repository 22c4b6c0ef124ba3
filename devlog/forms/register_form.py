# devlog/forms/register_form.py

from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, SubmitField
from wtforms.validators import DataRequired, Email, Length

class RegisterForm(FlaskForm):
    email = StringField(
        'Email',
        validators=[
            DataRequired(message="El email es obligatorio"),
            Email(message="Email inválido"),
            Length(max=120, message="Máximo 120 caracteres"),
        ]
    )
    password = PasswordField(
        'Contraseña',
        validators=[
            DataRequired(message="La contraseña es obligatoria"),
            Length(min=4, message="Mínimo 4 caracteres"),
        ]
    )
    submit = SubmitField('Crear cuenta')
