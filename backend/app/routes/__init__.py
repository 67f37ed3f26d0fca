from importlib import import_module

modules = [
    'auth',
    'team',
    'projects',
    'tasks',
    'credentials',
    'subscriptions',
    'notifications',
    'activities',
    'email',
    'auto_email',
    'request_hub',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
