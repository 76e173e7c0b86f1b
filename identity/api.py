"""HTTP routes for the identity flow.

Each route hands the request's SessionState and payload to the
FlowOrchestrator, stores the returned state back on the request (the
session middleware persists it), and renders the FlowResult as JSON.
"""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from api.base import ErrorCodes, error_response, success_response
from identity.flow import FlowOrchestrator
from identity.outcomes import NOTIFICATION_MESSAGES, FlowResult, Notification
from identity.security_middleware import SessionMiddleware
from identity.types import (
    ChangePasswordRequest,
    MagicLinkTokenRequest,
    PasswordRequest,
    PersonalInformation,
    ResetPasswordRequest,
    SessionState,
    StartSignInRequest,
    VerifyEmailRequest,
)

_STATUS_BY_NOTIFICATION = {
    Notification.INVALID_CREDENTIALS: 401,
    Notification.EMAIL_UNAVAILABLE: 409,
    Notification.EMAIL_VERIFIED_ALREADY: 409,
}

_PRECONDITION_ERRORS = {
    "email_required": (400, ErrorCodes.EMAIL_REQUIRED, "Enter your email address first"),
    "not_authenticated": (401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required"),
}


def _session(request: Request) -> SessionState:
    return getattr(request.state, SessionMiddleware.STATE_ATTRIBUTE)


def _respond(request: Request, result: FlowResult):
    """Persist the result's state and render it."""
    setattr(request.state, SessionMiddleware.STATE_ATTRIBUTE, result.state)

    context = {key: value for key, value in result.context.items() if key != "reason"}
    data = {
        "step": result.step.value,
        "notification": result.notification.value if result.notification else None,
        **context,
    }
    if result.notification:
        data["message"] = NOTIFICATION_MESSAGES[result.notification]["description"]

    if result.succeeded:
        return success_response(data)

    if result.notification is None:
        status_code, code, message = _PRECONDITION_ERRORS[result.context.get("reason", "not_authenticated")]
    else:
        status_code = _STATUS_BY_NOTIFICATION.get(result.notification, 400)
        code = result.notification.value
        message = data["message"]

    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, data).model_dump(mode="json"),
    )


def create_identity_router(orchestrator: FlowOrchestrator) -> APIRouter:
    """Create identity router with injected orchestrator."""
    router = APIRouter(tags=["identity"])

    @router.get("/start-sign-in")
    async def begin(request: Request, interaction_id: str | None = Query(None)):
        """Landing route; keeps the SSO interaction id and the referer for later."""
        return _respond(
            request,
            orchestrator.begin(_session(request), interaction_id, request.headers.get("referer")),
        )

    @router.post("/start-sign-in")
    async def start_sign_in(request: Request, body: StartSignInRequest):
        """Remember the email; next step is sign-in or sign-up."""
        return _respond(request, orchestrator.start_login(_session(request), body.login))

    @router.post("/sign-in")
    async def sign_in(request: Request, body: PasswordRequest):
        return _respond(request, orchestrator.password_login(_session(request), body.password))

    @router.post("/sign-up")
    async def sign_up(request: Request, body: PasswordRequest):
        return _respond(request, orchestrator.signup(_session(request), body.password))

    @router.post("/send-magic-link")
    async def send_magic_link(request: Request):
        """Always answers magic_link_sent for a pending email, known or not."""
        return _respond(request, orchestrator.request_magic_link(_session(request)))

    @router.get("/sign-in-with-magic-link")
    async def open_magic_link(request: Request, magic_link_token: str = Query("")):
        """Link target from the email.

        Signs in directly only in the browser that requested the link;
        elsewhere the response asks for confirmation (POST below).
        """
        return _respond(request, orchestrator.consume_magic_link(_session(request), magic_link_token))

    @router.post("/sign-in-with-magic-link")
    async def confirm_magic_link(request: Request, body: MagicLinkTokenRequest):
        return _respond(
            request,
            orchestrator.consume_magic_link(_session(request), body.magic_link_token, confirmed=True),
        )

    @router.get("/verify-email")
    async def verify_email_page(request: Request):
        """Send a verification code unless a live one was already sent."""
        return _respond(
            request,
            orchestrator.request_email_verification(_session(request), check_before_send=True),
        )

    @router.post("/send-email-verification")
    async def send_email_verification(request: Request):
        """Explicit resend: always mints a new code."""
        return _respond(request, orchestrator.request_email_verification(_session(request)))

    @router.post("/verify-email")
    async def verify_email(request: Request, body: VerifyEmailRequest):
        return _respond(
            request,
            orchestrator.consume_email_verification(_session(request), body.verify_email_token),
        )

    @router.post("/reset-password")
    async def reset_password(request: Request, body: ResetPasswordRequest):
        return _respond(request, orchestrator.request_password_reset(_session(request), body.login))

    @router.post("/change-password")
    async def change_password(request: Request, body: ChangePasswordRequest):
        return _respond(
            request,
            orchestrator.consume_password_reset(
                _session(request), body.reset_password_token, body.password
            ),
        )

    @router.post("/personal-information")
    async def personal_information(request: Request, body: PersonalInformation):
        return _respond(request, orchestrator.update_personal_information(_session(request), body))

    @router.post("/sign-out")
    async def sign_out(request: Request):
        return _respond(request, orchestrator.sign_out(_session(request)))

    @router.get("/continue")
    async def continue_after_sign_in(request: Request):
        """Where to go once signed in (SSO interaction, trusted referer, or home)."""
        session = _session(request)
        if session.authenticated_user is None:
            status_code, code, message = _PRECONDITION_ERRORS["not_authenticated"]
            return JSONResponse(
                status_code=status_code,
                content=error_response(code, message).model_dump(mode="json"),
            )
        return _respond(request, orchestrator.continue_after_sign_in(session))

    return router
