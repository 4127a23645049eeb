from sqelf_ci.notification.publisher import Publisher

__all__ = ["Publisher"]
