# teamhub/blueprints/tasks/forms.py
from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField, SelectField, IntegerField, DateTimeLocalField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt

from ...models.task import TASK_PRIORITIES, TASK_TYPES

ISO_FORMATS = ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d"]


class TaskForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    description = TextAreaField("Description", validators=[Opt()])
    task_type = SelectField("Type", choices=[(t, t) for t in TASK_TYPES], default="task")
    priority = SelectField("Priority", choices=[(p, p) for p in TASK_PRIORITIES], default="medium")
    due_date = DateTimeLocalField("Due", format=ISO_FORMATS, validators=[Opt()])
    completion_points = IntegerField("Points", default=0, validators=[Opt(), NumberRange(min=0)])
    assignee_id = IntegerField("Assignee", validators=[Opt()])


class ExtensionRequestForm(FlaskForm):
    requested_due_at = DateTimeLocalField("New due date", format=ISO_FORMATS, validators=[DataRequired()])
    reason = TextAreaField("Reason", validators=[DataRequired(), Length(max=2000)])
