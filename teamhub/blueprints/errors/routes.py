import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException
from flask_wtf.csrf import CSRFError
from sqlalchemy.exc import SQLAlchemyError

from ...errors import TeamHubError, TransientFailure
from ...extensions import db
from . import errors_bp

log = logging.getLogger(__name__)


def _rollback():
    # a failed write must not leave the scoped session in a broken transaction
    try:
        db.session.rollback()
    except SQLAlchemyError:
        log.exception("rollback failed")


def _alert(message, status, detail=None, **extra):
    body = {"error": message, "detail": detail}
    body.update(extra)
    return jsonify(body), status


@errors_bp.app_errorhandler(TeamHubError)
def err_domain(e: TeamHubError):
    _rollback()
    level = logging.ERROR if e.status_code >= 500 else logging.INFO
    log.log(level, "%s %s -> %s: %s", request.method, request.path, type(e).__name__, e.detail)
    return jsonify(e.to_dict()), e.status_code


@errors_bp.app_errorhandler(SQLAlchemyError)
def err_database(e):
    _rollback()
    log.exception("database error on %s %s", request.method, request.path)
    return err_domain(TransientFailure(str(e.__cause__ or e)))


# CSRF – typically treated as 400 Bad Request
@errors_bp.app_errorhandler(CSRFError)
def err_csrf(e):
    return _alert("Your session token expired. Refresh and try again.", 400, e.description)


# Fallback for HTTP errors raised with abort()
@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    return _alert(e.name, e.code, e.description)


# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    _rollback()
    log.exception("unhandled error on %s %s", request.method, request.path)
    # Don't leak internals, just a generic 500
    return _alert("Something went wrong. Please try again.", 500)
