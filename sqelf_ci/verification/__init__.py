from sqelf_ci.verification.base import VerificationCheck
from sqelf_ci.verification.sqelf_log_check import SqelfLogCheck
from sqelf_ci.verification.server_log_check import ServerLogCheck
from sqelf_ci.verification.clef_output_check import ClefOutputCheck
from sqelf_ci.verification.suite import VerificationSuite

__all__ = [
    "VerificationCheck",
    "SqelfLogCheck",
    "ServerLogCheck",
    "ClefOutputCheck",
    "VerificationSuite",
]
