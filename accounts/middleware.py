# accounts/middleware.py
import logging

from django.contrib.auth import logout

from .models import is_approved

logger = logging.getLogger(__name__)


class ApprovalGateMiddleware:
    """
    Terminates any authenticated session whose profile is missing or not approved
    (e.g. an admin revoked approval while the validator was signed in).
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated and not is_approved(user):
            logger.info("SESSION_TERMINATED user=%s reason=unapproved", user.pk)
            logout(request)
        return self.get_response(request)
