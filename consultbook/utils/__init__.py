__all__ = [
    "get_current_actor",
    "require_role",
    "is_email_enabled",
    "send_email",
]


def __getattr__(name):
    if name in {"get_current_actor", "require_role"}:
        from . import security as _security
        return getattr(_security, name)
    if name in {"is_email_enabled", "send_email"}:
        from . import email as _email
        return getattr(_email, name)
    raise AttributeError(f"module 'consultbook.utils' has no attribute '{name}'")
