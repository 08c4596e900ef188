# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, URLs, WSGI application and Celery configuration.
#
# Import Celery app to ensure it's loaded when Django starts, so shared_task
# decorators bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
