"""
auth/notifier.py -- Development notifier.

Mail delivery is handled outside this service. LogNotifier satisfies the
Notifier interface by recording each dispatch in the log so the flows can run
end-to-end locally. Codes and tokens are only written when debug is on.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("cmsadmin.auth.notifier")


class LogNotifier:
    def __init__(self, debug: bool = False) -> None:
        self.debug = debug

    async def send_multi_factor_authentication_email(self, user: dict, code: str) -> None:
        logger.info("MFA verification code dispatched to user_id=%s", user.get("id"))
        if self.debug:
            logger.debug("MFA verification code for %s: %s", user.get("email"), code)

    async def send_forgot_password_email(self, user: dict, token: str) -> None:
        logger.info("Password reset link dispatched to user_id=%s", user.get("id"))
        if self.debug:
            logger.debug("Password reset token for %s: %s", user.get("email"), token)
