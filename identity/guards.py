"""Anti-automation rule for magic links."""

from identity.types import SessionState


class AntiAutomationGuard:
    """
    Decides whether a magic link may sign in without a manual click.

    Only the browser that asked for the link holds the pending email.
    Without it the click may come from a link-preview crawler, a mail
    security scanner, a different browser, or an already signed-in session;
    in all of these the user must confirm by hand.
    """

    def requires_manual_confirmation(self, session: SessionState) -> bool:
        return not session.pending_email
