# teamhub/blueprints/auth/forms.py
from __future__ import annotations

from flask_wtf import FlaskForm
from wtforms import (
    StringField,
    PasswordField,
    BooleanField,
    IntegerField,
)
from wtforms.validators import (
    DataRequired,
    Email,
    Length,
    EqualTo,
    Optional as Opt,
    Regexp,
    ValidationError,
)

from ...models.user import User


# ---------------------
# Validators / Helpers
# ---------------------

PASSWORD_VALIDATORS = [
    DataRequired(),
    Length(min=8, message="Password must be at least 8 characters."),
    # at least one letter and one number
    Regexp(r"^(?=.*[A-Za-z])(?=.*\d).+$", message="Use letters and numbers."),
]


def _email_exists(email: str) -> bool:
    return User.query.filter(User.email == email.lower().strip()).first() is not None


# -------------
# Auth Forms
# -------------

class RegisterForm(FlaskForm):
    full_name = StringField("Full name", validators=[DataRequired(), Length(max=120)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=PASSWORD_VALIDATORS)
    password2 = PasswordField("Confirm password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")])
    # Registering with an organization name creates it with the new user as owner
    organization_name = StringField("Organization", validators=[Opt(), Length(max=160)])
    language = StringField("Language", validators=[Opt(), Length(max=10)])

    def validate_email(self, field):
        if _email_exists(field.data):
            raise ValidationError("This email is already registered.")


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember = BooleanField("Keep me signed in")


class ChangePasswordForm(FlaskForm):
    current_password = PasswordField("Current password", validators=[DataRequired()])
    password = PasswordField("New password", validators=PASSWORD_VALIDATORS)
    password2 = PasswordField("Confirm new password", validators=[DataRequired(), EqualTo("password")])


class ForgotPasswordForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])


class ResetPasswordForm(FlaskForm):
    token = StringField("Token", validators=[DataRequired()])
    password = PasswordField("New password", validators=PASSWORD_VALIDATORS)
    password2 = PasswordField("Confirm new password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")])


class SwitchOrganizationForm(FlaskForm):
    organization_id = IntegerField("Organization", validators=[DataRequired()])


class JoinOrganizationForm(FlaskForm):
    code = StringField("Invitation code", validators=[DataRequired(), Length(max=16)])
