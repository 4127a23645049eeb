from sqelf_ci.common import config
from sqelf_ci.common import dto
from sqelf_ci.common import exceptions
from sqelf_ci.common import utils
from sqelf_ci import builder
from sqelf_ci import workload
from sqelf_ci import verification
from sqelf_ci import notification
from sqelf_ci import orchestrator

__version__ = "1.0.0"
__all__ = [
    "config",
    "dto",
    "exceptions",
    "utils",
    "builder",
    "workload",
    "verification",
    "notification",
    "orchestrator",
]
