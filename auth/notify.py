"""
auth/notify.py -- Out-of-band delivery of two-factor codes.

The code for a pending challenge must never travel back in the login
response; it goes to the account holder over a separate channel. CodeSender
is that channel's contract. LoggingCodeSender is the development stand-in:
it writes the code to the log instead of sending mail, so it must not be
wired up in production.
"""

from __future__ import annotations

import abc
import logging

from auth.models import Email, TwoFactorCode

logger = logging.getLogger("sessionauth.notify")


class CodeSender(abc.ABC):
    @abc.abstractmethod
    def send_code(self, email: Email, code: TwoFactorCode) -> None: ...


class LoggingCodeSender(CodeSender):
    def send_code(self, email: Email, code: TwoFactorCode) -> None:
        logger.warning("Two-factor code for %s: %s (development sender)", email.masked(), code.value)
