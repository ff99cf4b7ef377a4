"""Sign-up, sign-in and session endpoints."""

from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.auth.guard import app_config, require_user
from app.auth.passwords import hash_password, verify_password
from app.auth.sessions import clear_session_cookie, create_session_token, set_session_cookie
from app.http.problem import ApiError
from app.logic.events import USER_REGISTERED, publish
from app.logic.repository_users import DuplicateUserError, create_user, get_user_by_email
from app.models.requests import SignInBody, SignUpBody

router = APIRouter()
logger = logging.getLogger(__name__)


def _email_taken() -> ApiError:
    return ApiError(409, "An account with this email already exists.", {"email": "Email is already in use."})


def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": user["id"], "name": user["name"], "email": user["email"]}


@router.post("/auth/signup", summary="Create a broker account", operation_id="signUp", status_code=201)
def sign_up(body: SignUpBody, request: Request):
    config = app_config(request)
    if get_user_by_email(body.email) is not None:
        raise _email_taken()
    try:
        user = create_user(body.name, body.email, hash_password(body.password))
    except DuplicateUserError as exc:
        raise _email_taken() from exc
    publish(USER_REGISTERED, {"user_id": user["id"]})
    logger.info("user_signed_up user=%s", user["id"])
    response = JSONResponse({"user": _public_user(user)}, status_code=201)
    set_session_cookie(response, create_session_token(user["id"], config), config)
    return response


@router.post("/auth/signin", summary="Start a session", operation_id="signIn")
def sign_in(body: SignInBody, request: Request):
    config = app_config(request)
    user = get_user_by_email(body.email)
    if user is None or not verify_password(body.password, user["password_hash"]):
        logger.info("sign_in_rejected")
        raise ApiError(401, "Invalid email or password.", {"email": "Invalid email or password."})
    response = JSONResponse({"user": _public_user(user)})
    set_session_cookie(response, create_session_token(user["id"], config), config)
    return response


@router.post("/auth/signout", summary="End the session", operation_id="signOut")
def sign_out(request: Request, response: Response):
    clear_session_cookie(response, app_config(request))
    return {"message": "Signed out successfully."}


@router.get("/auth/me", summary="Current user", operation_id="getCurrentUser")
def me(user: Dict[str, Any] = Depends(require_user)):
    return {"user": _public_user(user)}
